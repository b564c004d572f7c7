"""订阅镜像 CRUD 操作"""
from datetime import datetime

from sqlmodel import Session, col, select

from pullupclub.enums import (
    ACTIVE_SUBSCRIPTION_STATUSES,
    SubscriptionPlan,
    SubscriptionStatus,
)
from pullupclub.models import Subscription, utc_now


def get_by_stripe_id(*, session: Session, stripe_subscription_id: str) -> Subscription | None:
    statement = select(Subscription).where(
        Subscription.stripe_subscription_id == stripe_subscription_id
    )
    return session.exec(statement).first()


def upsert(
    *,
    session: Session,
    account_id: int,
    stripe_subscription_id: str,
    status: SubscriptionStatus,
    stripe_customer_id: str | None = None,
    plan: SubscriptionPlan | None = None,
    current_period_start: datetime | None = None,
    current_period_end: datetime | None = None,
) -> Subscription:
    """
    按 Stripe 订阅 ID 插入或更新订阅镜像

    后到的事件覆盖 (status, 周期) 字段（last-write-wins），
    同一事件重复投递只会得到同样的一行。调用方负责提交事务。
    """
    sub = get_by_stripe_id(session=session, stripe_subscription_id=stripe_subscription_id)
    now = utc_now()
    if not sub:
        sub = Subscription(
            account_id=account_id,
            stripe_subscription_id=stripe_subscription_id,
            status=status,
        )
    sub.status = status
    sub.stripe_customer_id = stripe_customer_id or sub.stripe_customer_id
    sub.plan = plan or sub.plan
    sub.current_period_start = current_period_start or sub.current_period_start
    sub.current_period_end = current_period_end or sub.current_period_end
    if status == SubscriptionStatus.canceled and sub.canceled_at is None:
        sub.canceled_at = now
    sub.updated_at = now
    session.add(sub)
    session.flush()
    return sub


def list_for_account(*, session: Session, account_id: int) -> list[Subscription]:
    """账户的全部订阅记录，最近更新的在前"""
    statement = (
        select(Subscription)
        .where(Subscription.account_id == account_id)
        .order_by(col(Subscription.updated_at).desc(), col(Subscription.id).desc())
    )
    return list(session.exec(statement).all())


def has_active(
    *, session: Session, account_id: int, exclude_stripe_id: str | None = None
) -> bool:
    """是否存在 active / trialing 的订阅（可排除指定订阅）"""
    statement = select(Subscription).where(
        Subscription.account_id == account_id,
        col(Subscription.status).in_([s.value for s in ACTIVE_SUBSCRIPTION_STATUSES]),
    )
    if exclude_stripe_id:
        statement = statement.where(Subscription.stripe_subscription_id != exclude_stripe_id)
    return session.exec(statement).first() is not None
