"""
Stripe Webhook 处理服务

Stripe 事件是付费状态的唯一来源：
- checkout.session.completed: 标记 is_paid，按订阅 ID upsert 订阅镜像
- invoice.payment_succeeded: 重新拉取订阅并刷新镜像
- invoice.payment_failed: 订阅镜像置为 past_due
- customer.subscription.updated: 用事件中的订阅对象刷新镜像
- customer.subscription.deleted: 置为 canceled，并按其余订阅重新计算 is_paid

事件可能重复投递、乱序到达：
- 按 event_id 去重（stripe_events 唯一约束）
- 订阅镜像按 stripe_subscription_id upsert，后到的事件覆盖

找不到对应账户的事件记录日志后丢弃（仍返回 2xx，不让 Stripe 无限重投）；
Stripe 或数据库调用失败时回滚事务并抛出 UpstreamError，由 Stripe 重投。
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from pullupclub import crud
from pullupclub.api.errors import UpstreamError, ValidationError
from pullupclub.enums import SubscriptionPlan, SubscriptionStatus
from pullupclub.models import Profile, StripeEvent, utc_now
from pullupclub.services.stripe_service import StripeService

logger = logging.getLogger(__name__)


class DropEvent(Exception):
    """事件无法关联到账户，记录后丢弃"""


@dataclass(frozen=True)
class WebhookOutcome:
    event_id: str
    event_type: str
    handled: bool = False
    duplicate: bool = False
    dropped: bool = False
    detail: str | None = None


def _object_id(value: Any) -> str | None:
    """Stripe 字段可能是 ID 字符串，也可能是展开后的对象"""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id")
    return None


def _coerce_status(value: Any) -> SubscriptionStatus | None:
    try:
        return SubscriptionStatus(value)
    except ValueError:
        logger.warning(f"Unknown Stripe subscription status {value!r}")
        return None


def _coerce_plan(value: Any) -> SubscriptionPlan | None:
    if value in {p.value for p in SubscriptionPlan}:
        return SubscriptionPlan(value)
    return None


def _invoice_subscription_id(invoice: dict[str, Any]) -> str | None:
    """发票上的订阅 ID，新版 API 移到了 parent.subscription_details"""
    sub_id = _object_id(invoice.get("subscription"))
    if sub_id:
        return sub_id
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return _object_id(details.get("subscription"))


def resolve_profile(
    *,
    session: Session,
    customer_id: str | None,
    metadata: dict[str, Any] | None,
    client_reference_id: str | None = None,
) -> Profile | None:
    """
    找到事件对应的账户资料

    先按已保存的 Stripe 客户 ID 查找；首次结账时还没有保存，
    改用 metadata.user_id（或 client_reference_id），并把客户 ID 记下来。
    """
    if customer_id:
        profile = crud.get_profile_by_stripe_customer(session=session, customer_id=customer_id)
        if profile:
            return profile

    raw_id = (metadata or {}).get("user_id") or client_reference_id
    if not raw_id:
        return None
    try:
        account_id = int(str(raw_id))
    except ValueError:
        logger.warning(f"Invalid user_id {raw_id!r} in Stripe metadata")
        return None

    profile = crud.get_profile(session=session, account_id=account_id)
    if profile and customer_id and not profile.stripe_customer_id:
        crud.set_stripe_customer(session=session, profile=profile, customer_id=customer_id)
        logger.info(f"Linked Stripe customer {customer_id} to account {account_id}")
    return profile


def _mirror_subscription(
    *,
    session: Session,
    stripe_service: StripeService,
    account_id: int,
    subscription: dict[str, Any],
    fallback_plan: SubscriptionPlan | None = None,
) -> None:
    fields = stripe_service.subscription_fields(subscription)
    status = _coerce_status(fields["status"])
    sub_id = subscription.get("id")
    if status is None or not sub_id:
        logger.warning(f"Skipping subscription mirror for account {account_id}: {sub_id!r}")
        return
    crud.upsert_subscription(
        session=session,
        account_id=account_id,
        stripe_subscription_id=sub_id,
        status=status,
        stripe_customer_id=_object_id(fields["customer"]),
        plan=fields["plan"] or fallback_plan,
        current_period_start=fields["current_period_start"],
        current_period_end=fields["current_period_end"],
    )


def _profile_for_subscription(
    *, session: Session, subscription: dict[str, Any]
) -> Profile | None:
    """订阅类事件：优先用已有镜像行，其次按客户 ID / metadata"""
    sub_id = subscription.get("id")
    if sub_id:
        existing = crud.get_subscription_by_stripe_id(
            session=session, stripe_subscription_id=sub_id
        )
        if existing:
            return crud.get_profile(session=session, account_id=existing.account_id)
    return resolve_profile(
        session=session,
        customer_id=_object_id(subscription.get("customer")),
        metadata=subscription.get("metadata"),
    )


def handle_checkout_completed(
    session: Session, stripe_service: StripeService, checkout: dict[str, Any]
) -> None:
    metadata = checkout.get("metadata") or {}
    profile = resolve_profile(
        session=session,
        customer_id=_object_id(checkout.get("customer")),
        metadata=metadata,
        client_reference_id=checkout.get("client_reference_id"),
    )
    if profile is None:
        raise DropEvent(f"no account for checkout session {checkout.get('id')}")

    profile.is_paid = True
    profile.updated_at = utc_now()
    session.add(profile)

    sub_id = _object_id(checkout.get("subscription"))
    if sub_id:
        subscription = stripe_service.retrieve_subscription(sub_id)
        _mirror_subscription(
            session=session,
            stripe_service=stripe_service,
            account_id=profile.account_id,
            subscription=subscription,
            fallback_plan=_coerce_plan(metadata.get("plan")),
        )
    logger.info(f"Account {profile.account_id} activated by checkout {checkout.get('id')}")


def handle_invoice_succeeded(
    session: Session, stripe_service: StripeService, invoice: dict[str, Any]
) -> None:
    sub_id = _invoice_subscription_id(invoice)
    if not sub_id:
        # 一次性发票，与订阅无关
        return
    subscription = stripe_service.retrieve_subscription(sub_id)
    profile = _profile_for_subscription(session=session, subscription=subscription)
    if profile is None:
        profile = resolve_profile(
            session=session, customer_id=_object_id(invoice.get("customer")), metadata=None
        )
    if profile is None:
        raise DropEvent(f"no account for subscription {sub_id}")
    _mirror_subscription(
        session=session,
        stripe_service=stripe_service,
        account_id=profile.account_id,
        subscription=subscription,
    )


def handle_invoice_failed(
    session: Session, stripe_service: StripeService, invoice: dict[str, Any]
) -> None:
    sub_id = _invoice_subscription_id(invoice)
    if not sub_id:
        return
    existing = crud.get_subscription_by_stripe_id(session=session, stripe_subscription_id=sub_id)
    if existing:
        account_id = existing.account_id
    else:
        profile = resolve_profile(
            session=session, customer_id=_object_id(invoice.get("customer")), metadata=None
        )
        if profile is None:
            raise DropEvent(f"no account for subscription {sub_id}")
        account_id = profile.account_id
    crud.upsert_subscription(
        session=session,
        account_id=account_id,
        stripe_subscription_id=sub_id,
        status=SubscriptionStatus.past_due,
        stripe_customer_id=_object_id(invoice.get("customer")),
    )
    logger.info(f"Subscription {sub_id} of account {account_id} is past due")


def handle_subscription_updated(
    session: Session, stripe_service: StripeService, subscription: dict[str, Any]
) -> None:
    profile = _profile_for_subscription(session=session, subscription=subscription)
    if profile is None:
        raise DropEvent(f"no account for subscription {subscription.get('id')}")
    _mirror_subscription(
        session=session,
        stripe_service=stripe_service,
        account_id=profile.account_id,
        subscription=subscription,
    )


def handle_subscription_deleted(
    session: Session, stripe_service: StripeService, subscription: dict[str, Any]
) -> None:
    sub_id = subscription.get("id")
    profile = _profile_for_subscription(session=session, subscription=subscription)
    if profile is None or not sub_id:
        raise DropEvent(f"no account for subscription {sub_id}")

    fields = stripe_service.subscription_fields(subscription)
    crud.upsert_subscription(
        session=session,
        account_id=profile.account_id,
        stripe_subscription_id=sub_id,
        status=SubscriptionStatus.canceled,
        stripe_customer_id=_object_id(fields["customer"]),
        plan=fields["plan"],
        current_period_start=fields["current_period_start"],
        current_period_end=fields["current_period_end"],
    )
    profile.is_paid = crud.has_active_subscription(
        session=session, account_id=profile.account_id, exclude_stripe_id=sub_id
    )
    profile.updated_at = utc_now()
    session.add(profile)
    logger.info(
        f"Subscription {sub_id} of account {profile.account_id} canceled, "
        f"is_paid={profile.is_paid}"
    )


EventHandler = Callable[[Session, StripeService, dict[str, Any]], None]

EVENT_HANDLERS: dict[str, EventHandler] = {
    "checkout.session.completed": handle_checkout_completed,
    "invoice.payment_succeeded": handle_invoice_succeeded,
    "invoice.payment_failed": handle_invoice_failed,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
}


def process_event(
    *, session: Session, stripe_service: StripeService, event: dict[str, Any]
) -> WebhookOutcome:
    """
    处理一个已验签的 Stripe 事件

    Args:
        session: 数据库会话
        stripe_service: Stripe 服务
        event: 事件 dict

    Returns:
        WebhookOutcome

    Raises:
        ValidationError: 事件缺少 id / type
        UpstreamError: Stripe 或数据库调用失败（事务已回滚）
    """
    event_id = str(event.get("id") or "")
    event_type = str(event.get("type") or "")
    if not event_id or not event_type:
        raise ValidationError("Missing event id/type", code=400204)

    # 同一事件重投时 event_id 相同
    try:
        session.add(StripeEvent(event_id=event_id, event_type=event_type, payload=event))
        session.flush()
    except IntegrityError:
        session.rollback()
        logger.info(f"Duplicate Stripe event {event_id} ({event_type}) ignored")
        return WebhookOutcome(event_id=event_id, event_type=event_type, duplicate=True)

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        session.commit()
        logger.info(f"Unhandled Stripe event type {event_type} ({event_id})")
        return WebhookOutcome(event_id=event_id, event_type=event_type)

    obj = (event.get("data") or {}).get("object") or {}
    try:
        handler(session, stripe_service, obj)
        session.commit()
    except DropEvent as e:
        session.commit()
        logger.warning(f"Dropped Stripe event {event_id} ({event_type}): {e}")
        return WebhookOutcome(
            event_id=event_id, event_type=event_type, dropped=True, detail=str(e)
        )
    except UpstreamError as e:
        session.rollback()
        logger.error(f"Stripe event {event_id} ({event_type}) failed: {e}")
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Stripe event {event_id} ({event_type}) database error: {e}")
        raise UpstreamError(collaborator="database", operation=event_type)

    logger.info(f"Processed Stripe event {event_id} ({event_type})")
    return WebhookOutcome(event_id=event_id, event_type=event_type, handled=True)
