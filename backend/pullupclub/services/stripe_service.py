"""
Stripe 支付服务

文档: https://docs.stripe.com/api
Webhook: https://docs.stripe.com/webhooks

所有 Stripe 调用都视为可能失败，这一层不做自动重试，
失败统一转换为 UpstreamError，由调用方（前端）决定是否重试。
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

import stripe

from pullupclub.api.errors import UpstreamError, ValidationError
from pullupclub.core.config import settings
from pullupclub.enums import CheckoutMode, SubscriptionPlan

logger = logging.getLogger(__name__)


def as_dict(obj: Any) -> dict[str, Any]:
    """把 StripeObject 转成普通 dict，已经是 dict 时原样返回"""
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


def parse_timestamp(value: Any) -> datetime | None:
    """解析 Stripe 的 Unix 秒级时间戳"""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError):
        logger.error(f"Failed to parse Stripe timestamp {value!r}")
        return None


class StripeService:
    """Stripe 服务封装"""

    def __init__(self, api_key: str | None, webhook_secret: str | None = None):
        """
        初始化 Stripe 服务

        Args:
            api_key: Stripe Secret Key
            webhook_secret: Webhook 签名密钥
        """
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.prices = {
            SubscriptionPlan.monthly: settings.STRIPE_PRICE_MONTHLY,
            SubscriptionPlan.annual: settings.STRIPE_PRICE_ANNUAL,
        }
        logger.info("Stripe service initialized")

    def price_for_plan(self, plan: SubscriptionPlan) -> str:
        return self.prices[SubscriptionPlan(plan)]

    def plan_for_price(self, price_id: str | None) -> SubscriptionPlan | None:
        """根据价格 ID 反查订阅计划，未知价格返回 None"""
        for plan, configured in self.prices.items():
            if price_id and price_id == configured:
                return plan
        return None

    def create_checkout_session(
        self,
        *,
        plan: SubscriptionPlan,
        account_id: int,
        email: str,
        customer_id: str | None = None,
        mode: CheckoutMode = CheckoutMode.hosted,
    ) -> dict[str, Any]:
        """
        创建订阅结账会话

        metadata 中带上账户 ID 和计划，首次结账的 webhook 靠它找到账户。

        Returns:
            {"id": str, "url": str | None, "client_secret": str | None}

        Raises:
            UpstreamError: Stripe 调用失败
        """
        plan = SubscriptionPlan(plan)
        params: dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": self.price_for_plan(plan), "quantity": 1}],
            "client_reference_id": str(account_id),
            "metadata": {"user_id": str(account_id), "plan": plan.value},
            "subscription_data": {
                "metadata": {"user_id": str(account_id), "plan": plan.value}
            },
            "allow_promotion_codes": True,
        }
        # 已有 Stripe 客户时复用，否则用邮箱让 Stripe 新建客户
        if customer_id:
            params["customer"] = customer_id
        else:
            params["customer_email"] = email

        if mode == CheckoutMode.embedded:
            params["ui_mode"] = "embedded"
            params["return_url"] = (
                f"{settings.FRONTEND_HOST}/subscription/return?session_id={{CHECKOUT_SESSION_ID}}"
            )
        else:
            params["success_url"] = (
                f"{settings.FRONTEND_HOST}/success?session_id={{CHECKOUT_SESSION_ID}}"
            )
            params["cancel_url"] = f"{settings.FRONTEND_HOST}/subscription"

        try:
            session = stripe.checkout.Session.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout.Session.create failed for account {account_id}: {e}")
            raise UpstreamError(collaborator="stripe", operation="create_checkout_session")

        data = as_dict(session)
        logger.info(f"Created checkout session {data.get('id')} for account {account_id} ({plan.value})")
        return {
            "id": data.get("id"),
            "url": data.get("url"),
            "client_secret": data.get("client_secret"),
        }

    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        """获取结账会话（只用于前端展示，不会据此标记付费）"""
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout.Session.retrieve {session_id} failed: {e}")
            raise UpstreamError(collaborator="stripe", operation="retrieve_checkout_session")
        return as_dict(session)

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        """获取订阅对象"""
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe Subscription.retrieve {subscription_id} failed: {e}")
            raise UpstreamError(collaborator="stripe", operation="retrieve_subscription")
        return as_dict(subscription)

    def construct_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        校验 Webhook 签名并解析事件

        Args:
            payload: 请求体原始字节
            signature: Stripe-Signature 头部值

        Returns:
            事件 dict

        Raises:
            ValidationError: 签名缺失/无效，请求体不是合法 JSON，
                或非本地环境没有配置签名密钥
        """
        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError("Invalid webhook payload", code=400203)
        if self.webhook_secret:
            if not signature:
                raise ValidationError("Missing Stripe-Signature header", code=400201)
            try:
                stripe.WebhookSignature.verify_header(
                    body,
                    signature,
                    self.webhook_secret,
                    settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
                )
            except stripe.SignatureVerificationError:
                logger.warning("Rejected Stripe webhook with invalid signature")
                raise ValidationError("Invalid webhook signature", code=400202)
        elif settings.ENVIRONMENT != "local":
            # 没有密钥就无法验签，非本地环境一律拒绝
            logger.error("Webhook secret not configured, rejecting unverifiable webhook")
            raise ValidationError("Webhook signature verification unavailable", code=400205)
        else:
            logger.warning("Webhook secret not configured, skipping signature verification")

        try:
            event = json.loads(body)
        except ValueError:
            raise ValidationError("Invalid webhook payload", code=400203)
        if not isinstance(event, dict):
            raise ValidationError("Invalid webhook payload", code=400203)
        return event

    def subscription_fields(self, subscription: dict[str, Any]) -> dict[str, Any]:
        """
        从 Stripe 订阅对象中提取镜像表需要的字段

        新版 API 把计费周期放在 items 上，这里两处都兼容。
        """
        items = (subscription.get("items") or {}).get("data") or []
        first_item = items[0] if items else {}
        price = first_item.get("price") or {}
        period_start = subscription.get("current_period_start") or first_item.get(
            "current_period_start"
        )
        period_end = subscription.get("current_period_end") or first_item.get(
            "current_period_end"
        )
        metadata_plan = (subscription.get("metadata") or {}).get("plan")
        plan = self.plan_for_price(price.get("id"))
        if plan is None and metadata_plan in {p.value for p in SubscriptionPlan}:
            plan = SubscriptionPlan(metadata_plan)
        return {
            "status": subscription.get("status"),
            "customer": subscription.get("customer"),
            "plan": plan,
            "current_period_start": parse_timestamp(period_start),
            "current_period_end": parse_timestamp(period_end),
        }


# 全局 Stripe 服务实例
_stripe_service: StripeService | None = None


def init_stripe_service(api_key: str | None, webhook_secret: str | None = None) -> StripeService:
    """初始化全局 Stripe 服务"""
    global _stripe_service
    _stripe_service = StripeService(api_key=api_key, webhook_secret=webhook_secret)
    return _stripe_service


def get_stripe_service() -> StripeService:
    """
    获取全局 Stripe 服务实例（未初始化时按配置创建）

    也作为 FastAPI 依赖使用，测试中通过 dependency_overrides 替换。
    """
    if _stripe_service is None:
        return init_stripe_service(
            api_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        )
    return _stripe_service
