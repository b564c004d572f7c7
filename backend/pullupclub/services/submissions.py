"""
视频提交资格与审核状态机

资格按需计算，不单独持久化：
- eligible: 可以提交
- blocked_pending: 已有一条待审核提交
- blocked_cooldown: 最近一次通过审核的提交仍在冷却期（默认 30 天）内
被拒绝的提交永远不会阻止再次提交。

审核只发生一次：approve / reject 都用"仅当仍为 pending"的条件更新，
先到的一次生效，后到的得到 InvalidStateError。

"每个账户最多一条 pending" 由数据库部分唯一索引保证，
资格检查只是为了给出友好的错误，并发提交时后写入的一方会撞上唯一约束。
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from urllib.parse import urlsplit

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from pullupclub import crud
from pullupclub.api.errors import (
    EligibilityError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from pullupclub.core.config import settings
from pullupclub.enums import EligibilityState, SubmissionStatus, VideoPlatform
from pullupclub.models import Account, Submission, as_utc, utc_now

logger = logging.getLogger(__name__)

# 主机名后缀 -> 平台
PLATFORM_HOSTS: dict[str, VideoPlatform] = {
    "youtube.com": VideoPlatform.youtube,
    "youtu.be": VideoPlatform.youtube,
    "instagram.com": VideoPlatform.instagram,
    "tiktok.com": VideoPlatform.tiktok,
    "facebook.com": VideoPlatform.facebook,
    "fb.watch": VideoPlatform.facebook,
}


@dataclass(frozen=True)
class Eligibility:
    state: EligibilityState
    days_remaining: int | None = None
    next_eligible_at: datetime | None = None
    pending_submission_id: int | None = None

    @property
    def is_eligible(self) -> bool:
        return self.state == EligibilityState.eligible

    def to_data(self) -> dict:
        return {
            "state": self.state.value,
            "days_remaining": self.days_remaining,
            "next_eligible_at": self.next_eligible_at.isoformat() if self.next_eligible_at else None,
            "pending_submission_id": self.pending_submission_id,
        }


def classify_platform(video_url: str) -> VideoPlatform:
    """
    识别视频平台

    已知平台按主机名匹配（含子域名，如 m.youtube.com、vm.tiktok.com），
    其余带主机名的 http(s) 链接归为 other。

    Raises:
        ValidationError: 不是可识别的 http(s) 链接
    """
    try:
        parts = urlsplit((video_url or "").strip())
    except ValueError:
        raise ValidationError("Invalid video URL", code=400102)
    host = (parts.hostname or "").lower()
    if parts.scheme not in ("http", "https") or not host:
        raise ValidationError("Invalid video URL", code=400102)

    for suffix, platform in PLATFORM_HOSTS.items():
        if host == suffix or host.endswith(f".{suffix}"):
            return platform
    return VideoPlatform.other


def check_eligibility(
    *, session: Session, account_id: int, now: datetime | None = None
) -> Eligibility:
    """
    计算账户当前能否提交

    Args:
        session: 数据库会话
        account_id: 账户 ID
        now: 计算时间（默认当前 UTC 时间）
    """
    now = as_utc(now) if now else utc_now()
    submissions = crud.list_submissions_for_account(session=session, account_id=account_id)

    for sub in submissions:
        if sub.status == SubmissionStatus.pending:
            return Eligibility(
                state=EligibilityState.blocked_pending, pending_submission_id=sub.id
            )

    latest_approved = next(
        (s for s in submissions if s.status == SubmissionStatus.approved), None
    )
    if latest_approved is not None:
        eligible_at = as_utc(latest_approved.submitted_at) + timedelta(
            days=settings.SUBMISSION_COOLDOWN_DAYS
        )
        if now < eligible_at:
            days = math.ceil((eligible_at - now) / timedelta(days=1))
            return Eligibility(
                state=EligibilityState.blocked_cooldown,
                days_remaining=days,
                next_eligible_at=eligible_at,
            )
    return Eligibility(state=EligibilityState.eligible)


def _positive_count(value: int, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", code=400101)
    return value


def submit(
    *,
    session: Session,
    account: Account,
    pull_up_count: int,
    video_url: str,
    region: str | None = None,
    club_affiliation: str | None = None,
    gender: str | None = None,
    now: datetime | None = None,
) -> Submission:
    """
    创建一条待审核提交

    region / gender 未提供时取个人资料中的值，club_affiliation 默认取 organization。

    Raises:
        ValidationError: 个数不是正整数或视频链接无法识别
        EligibilityError: 不满足提交资格（包括并发提交竞争失败）
    """
    _positive_count(pull_up_count, "pull_up_count")
    platform = classify_platform(video_url)

    eligibility = check_eligibility(session=session, account_id=account.id, now=now)
    if not eligibility.is_eligible:
        raise EligibilityError(
            "Not eligible to submit a video", data=eligibility.to_data()
        )

    profile = crud.get_profile(session=session, account_id=account.id)
    if profile:
        region = region or profile.region
        club_affiliation = club_affiliation or profile.organization
        gender = gender or profile.gender

    submission = Submission(
        account_id=account.id,
        pull_up_count=pull_up_count,
        video_url=video_url.strip(),
        platform=platform,
        status=SubmissionStatus.pending,
        submitted_at=as_utc(now) if now else utc_now(),
        region=region,
        club_affiliation=club_affiliation,
        gender=gender,
    )
    session.add(submission)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.info(f"Concurrent submission rejected for account {account.id}")
        raise EligibilityError(
            "A submission is already pending review",
            data={"state": EligibilityState.blocked_pending.value},
        )
    session.refresh(submission)
    logger.info(
        f"Account {account.id} submitted {pull_up_count} pull-ups ({platform.value}), "
        f"submission {submission.id}"
    )
    return submission


def _require_admin(*, session: Session, admin_id: int) -> None:
    """角色只以 admin_roles 表为准"""
    if not crud.is_admin(session=session, account_id=admin_id):
        raise ForbiddenError()


def _review(
    *,
    session: Session,
    admin_id: int,
    submission_id: int,
    values: dict,
) -> Submission:
    submission = session.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError("Submission not found")
    if submission.status != SubmissionStatus.pending:
        raise InvalidStateError("Submission has already been reviewed")

    result = session.exec(
        update(Submission)
        .where(
            Submission.id == submission_id,
            Submission.status == SubmissionStatus.pending.value,
        )
        .values(reviewed_by=admin_id, **values)
    )
    session.commit()
    if result.rowcount != 1:
        raise InvalidStateError("Submission has already been reviewed")
    session.refresh(submission)
    return submission


def approve(
    *, session: Session, admin_id: int, submission_id: int, actual_count: int
) -> Submission:
    """
    审核通过

    Raises:
        ForbiddenError: 调用者不是管理员
        NotFoundError: 提交不存在
        InvalidStateError: 提交已经审核过
        ValidationError: 核定个数不是正整数
    """
    _require_admin(session=session, admin_id=admin_id)
    _positive_count(actual_count, "actual_pull_up_count")
    submission = _review(
        session=session,
        admin_id=admin_id,
        submission_id=submission_id,
        values={
            "status": SubmissionStatus.approved.value,
            "actual_pull_up_count": actual_count,
            "approved_at": utc_now(),
        },
    )
    logger.info(f"Admin {admin_id} approved submission {submission_id} with {actual_count}")
    return submission


def reject(
    *, session: Session, admin_id: int, submission_id: int, notes: str | None = None
) -> Submission:
    """审核拒绝，前置条件同 approve"""
    _require_admin(session=session, admin_id=admin_id)
    submission = _review(
        session=session,
        admin_id=admin_id,
        submission_id=submission_id,
        values={"status": SubmissionStatus.rejected.value, "notes": notes},
    )
    logger.info(f"Admin {admin_id} rejected submission {submission_id}")
    return submission
