"""个人资料 CRUD 操作"""
from sqlalchemy import update
from sqlmodel import Session, select

from pullupclub.enums import SubscriptionPlan
from pullupclub.models import Profile, utc_now


def get(*, session: Session, account_id: int) -> Profile | None:
    return session.get(Profile, account_id)


def record_pending_plan(
    *, session: Session, account_id: int, plan: SubscriptionPlan
) -> bool:
    """
    记录待处理的订阅计划

    只在当前没有待处理计划时写入，保证每个账户最多一个未消费的计划。

    Returns:
        是否写入成功
    """
    result = session.exec(
        update(Profile)
        .where(
            Profile.account_id == account_id,
            Profile.pending_subscription_plan.is_(None),  # type: ignore[union-attr]
        )
        .values(
            pending_subscription_plan=SubscriptionPlan(plan).value,
            pending_plan_set_at=utc_now(),
            updated_at=utc_now(),
        )
    )
    session.commit()
    return result.rowcount == 1


def consume_pending_plan(*, session: Session, account_id: int) -> SubscriptionPlan | None:
    """
    原子地消费待处理的订阅计划

    先读出当前计划，再用条件更新完成消费：只有计划和记录时间都还是读到的值时才清空，
    这样清空后又以相同计划重新记录的意图不会被旧的读取者消费。
    两个并发请求只有一个能让 rowcount == 1，另一个视为没有待处理计划。

    Returns:
        消费成功时返回计划，否则返回 None
    """
    profile = session.get(Profile, account_id)
    if not profile or profile.pending_subscription_plan is None:
        return None
    plan = SubscriptionPlan(profile.pending_subscription_plan)

    result = session.exec(
        update(Profile)
        .where(
            Profile.account_id == account_id,
            Profile.pending_subscription_plan == plan.value,
            Profile.pending_plan_set_at == profile.pending_plan_set_at,
        )
        .values(
            pending_subscription_plan=None,
            pending_plan_set_at=None,
            updated_at=utc_now(),
        )
    )
    session.commit()
    # 条件更新绕过了 ORM，让会话中的实例重新加载
    session.expire(profile)
    if result.rowcount != 1:
        return None
    return plan


def set_stripe_customer(*, session: Session, profile: Profile, customer_id: str) -> None:
    profile.stripe_customer_id = customer_id
    profile.updated_at = utc_now()
    session.add(profile)


def get_by_stripe_customer(*, session: Session, customer_id: str) -> Profile | None:
    statement = select(Profile).where(Profile.stripe_customer_id == customer_id)
    return session.exec(statement).first()
