"""视频提交 CRUD 操作"""
from sqlmodel import Session, col, func, select

from pullupclub.enums import SubmissionStatus
from pullupclub.models import Submission


def list_for_account(*, session: Session, account_id: int) -> list[Submission]:
    """账户的全部提交，按提交时间倒序"""
    statement = (
        select(Submission)
        .where(Submission.account_id == account_id)
        .order_by(col(Submission.submitted_at).desc(), col(Submission.id).desc())
    )
    return list(session.exec(statement).all())


def list_page(
    *,
    session: Session,
    status: SubmissionStatus | None,
    offset: int,
    limit: int,
) -> tuple[list[Submission], int]:
    """分页查询提交（管理后台），返回 (当前页, 总数)"""
    statement = select(Submission)
    count_statement = select(func.count()).select_from(Submission)
    if status is not None:
        statement = statement.where(Submission.status == status.value)
        count_statement = count_statement.where(Submission.status == status.value)
    total = session.exec(count_statement).one()
    rows = session.exec(
        statement.order_by(col(Submission.submitted_at).desc(), col(Submission.id).desc())
        .offset(offset)
        .limit(limit)
    ).all()
    return list(rows), total


def count_by_status(*, session: Session) -> dict[str, int]:
    """按状态统计提交数量，缺失的状态计为 0"""
    rows = session.exec(
        select(Submission.status, func.count()).group_by(Submission.status)
    ).all()
    counts = {s.value: 0 for s in SubmissionStatus}
    for status, total in rows:
        counts[SubmissionStatus(status).value] = total
    return counts
