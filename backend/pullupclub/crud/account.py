"""账户 CRUD 操作"""
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from pullupclub.api.errors import AppError
from pullupclub.core.security import get_password_hash, verify_password
from pullupclub.models import Account, AdminRole, Profile


def get_by_email(*, session: Session, email: str) -> Account | None:
    """根据邮箱查询账户（不区分大小写）"""
    statement = select(Account).where(func.lower(Account.email) == email.lower())
    return session.exec(statement).first()


def create(*, session: Session, email: str, password: str) -> Account:
    """
    创建新账户，同时初始化个人资料

    并发注册同一邮箱时由唯一索引兜底，输掉竞争的一方回滚并返回 409。
    """
    account = Account(email=email.lower(), hashed_password=get_password_hash(password))
    session.add(account)
    try:
        session.flush()
        session.add(Profile(account_id=account.id))
        session.commit()
    except IntegrityError:
        session.rollback()
        raise AppError(code=409001, message="Email already registered", status_code=409)
    session.refresh(account)
    return account


def authenticate(*, session: Session, email: str, password: str) -> Account | None:
    """校验邮箱和密码，失败返回 None"""
    account = get_by_email(session=session, email=email)
    if not account:
        return None
    if not verify_password(password, account.hashed_password):
        return None
    return account


def is_admin(*, session: Session, account_id: int) -> bool:
    """查询 admin_roles 表判断是否为管理员"""
    return session.get(AdminRole, account_id) is not None
