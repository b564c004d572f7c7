"""
结账编排服务

把"想订阅某个计划"转换为下一步动作：
- 未登录：不调用 Stripe，只把计划带到注册/登录流程，
  账户确定后由激活状态机写入 profiles.pending_subscription_plan
- 已登录：创建 Stripe 结账会话，返回托管页面 URL 或嵌入式 client_secret

这里不会创建任何订阅记录，订阅镜像只由 webhook 写入。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

from sqlmodel import Session

from pullupclub import crud
from pullupclub.api.errors import InvalidStateError
from pullupclub.enums import CheckoutMode, SubscriptionPlan
from pullupclub.models import Account
from pullupclub.services.stripe_service import StripeService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignupRedirect:
    """未登录时的结果：带着计划去注册"""

    plan: SubscriptionPlan

    @property
    def redirect_to(self) -> str:
        return f"/create-account?{urlencode({'plan': self.plan.value})}"


@dataclass(frozen=True)
class CheckoutRedirect:
    """已登录时的结果：Stripe 结账会话"""

    plan: SubscriptionPlan
    session_id: str
    url: str | None = None
    client_secret: str | None = None


def request_subscription(
    *,
    session: Session,
    stripe_service: StripeService,
    plan: SubscriptionPlan,
    account: Account | None,
    mode: CheckoutMode = CheckoutMode.hosted,
) -> SignupRedirect | CheckoutRedirect:
    """
    请求订阅

    Args:
        session: 数据库会话
        stripe_service: Stripe 服务
        plan: 订阅计划
        account: 当前账户，未登录为 None
        mode: 托管或嵌入式结账

    Returns:
        SignupRedirect 或 CheckoutRedirect

    Raises:
        InvalidStateError: 账户已有 active / trialing 订阅
        UpstreamError: Stripe 调用失败（不会留下任何本地状态）
    """
    plan = SubscriptionPlan(plan)
    if account is None:
        logger.info(f"Anonymous subscribe request for {plan.value}, redirecting to signup")
        return SignupRedirect(plan=plan)
    return start_checkout(
        session=session, stripe_service=stripe_service, plan=plan, account=account, mode=mode
    )


def start_checkout(
    *,
    session: Session,
    stripe_service: StripeService,
    plan: SubscriptionPlan,
    account: Account,
    mode: CheckoutMode = CheckoutMode.hosted,
) -> CheckoutRedirect:
    """为已认证账户创建结账会话，已有有效订阅的账户不能再次结账"""
    if crud.has_active_subscription(session=session, account_id=account.id):
        logger.info(f"Account {account.id} already has an active subscription, refusing checkout")
        raise InvalidStateError("Account already has an active subscription", code=409300)
    profile = crud.get_profile(session=session, account_id=account.id)
    customer_id = profile.stripe_customer_id if profile else None
    created = stripe_service.create_checkout_session(
        plan=plan,
        account_id=account.id,
        email=account.email,
        customer_id=customer_id,
        mode=mode,
    )
    return CheckoutRedirect(
        plan=SubscriptionPlan(plan),
        session_id=created["id"],
        url=created.get("url"),
        client_secret=created.get("client_secret"),
    )
