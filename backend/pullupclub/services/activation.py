"""
账户激活状态机

每个账户的状态是两个独立维度的组合：
- ProfileStage: incomplete -> complete（单向）
- PaymentStage: unpaid / active / past_due / canceled（只由 webhook 驱动）

认证完成（注册、登录、会话恢复）时统一走 complete_authentication：
1. 读取资料和角色（资料可能尚未创建，有限次重试后退回默认资料）
2. 如果有待处理的订阅计划，原子地消费并立即创建结账会话；
   无论结账是否成功计划都已清空，失败会报告给调用方
3. 根据订阅镜像判断付费阶段，任何不确定都视为 unpaid
4-6. 由 next_destination 计算前端应跳转的位置

重复进入（刷新页面、重复的会话恢复事件）不会再次创建结账会话：
计划消费是唯一的闸门。前端的"支付成功"跳转只是临时提示，
is_paid 只由 webhook 设置。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from pullupclub import crud
from pullupclub.api.errors import InvalidStateError, UpstreamError
from pullupclub.core.config import settings
from pullupclub.enums import (
    ACTIVE_SUBSCRIPTION_STATUSES,
    CheckoutMode,
    Destination,
    PaymentStage,
    ProfileStage,
    Role,
    SubscriptionStatus,
)
from pullupclub.models import Account, Profile, Subscription
from pullupclub.services.checkout import CheckoutRedirect, start_checkout
from pullupclub.services.stripe_service import StripeService

logger = logging.getLogger(__name__)


class ProfileNotReady(Exception):
    """资料行尚未创建（注册后异步生成）"""


@dataclass(frozen=True)
class AccountState:
    account_id: int
    role: Role
    profile_stage: ProfileStage
    payment_stage: PaymentStage

    @property
    def is_paid(self) -> bool:
        return self.payment_stage == PaymentStage.active


@dataclass(frozen=True)
class ActivationResult:
    state: AccountState
    destination: Destination
    checkout: CheckoutRedirect | None = None
    checkout_error: str | None = None
    profile_is_default: bool = False


def next_destination(state: AccountState) -> Destination:
    """
    状态转移函数：根据账户状态决定认证后的去向

    管理员直接进入后台；资料未完成时无论付费与否都先补全资料；
    未付费或已取消进入付费墙；扣款失败进入账单页面。
    """
    if state.role == Role.admin:
        return Destination.admin_dashboard
    if state.profile_stage == ProfileStage.incomplete:
        return Destination.complete_profile
    if state.payment_stage in (PaymentStage.unpaid, PaymentStage.canceled):
        return Destination.subscription
    if state.payment_stage == PaymentStage.past_due:
        return Destination.billing
    return Destination.profile


def payment_stage_for(subscriptions: list[Subscription], is_paid: bool) -> PaymentStage:
    """
    由订阅镜像推导付费阶段

    Args:
        subscriptions: 账户的订阅记录（最近更新的在前）
        is_paid: profiles.is_paid（没有订阅记录时使用）
    """
    statuses = [SubscriptionStatus(s.status) for s in subscriptions]
    if any(s in ACTIVE_SUBSCRIPTION_STATUSES for s in statuses):
        return PaymentStage.active
    if not statuses:
        return PaymentStage.active if is_paid else PaymentStage.unpaid

    latest = statuses[0]
    if latest in (SubscriptionStatus.past_due, SubscriptionStatus.unpaid):
        return PaymentStage.past_due
    if latest in (SubscriptionStatus.canceled, SubscriptionStatus.incomplete_expired):
        return PaymentStage.canceled
    return PaymentStage.unpaid


def resolve_payment_stage(*, session: Session, profile: Profile) -> PaymentStage:
    """判断付费阶段，查询失败时默认 unpaid，绝不默认放行"""
    try:
        subscriptions = crud.list_subscriptions_for_account(
            session=session, account_id=profile.account_id
        )
        return payment_stage_for(subscriptions, bool(profile.is_paid))
    except SQLAlchemyError as e:
        logger.error(f"Failed to resolve payment stage for account {profile.account_id}: {e}")
        session.rollback()
        return PaymentStage.unpaid


def load_profile(*, session: Session, account_id: int) -> tuple[Profile, bool]:
    """
    读取资料，资料行不存在时有限次重试

    重试次数和递增等待时间来自配置；全部失败后返回一个未保存的默认资料
    （未完成、未付费），不会让前端无限等待。

    Returns:
        (资料, 是否为默认资料)
    """
    backoff = settings.PROFILE_FETCH_BACKOFF_SECONDS
    retrying = Retrying(
        stop=stop_after_attempt(settings.PROFILE_FETCH_ATTEMPTS),
        wait=wait_incrementing(start=backoff, increment=backoff),
        retry=retry_if_exception_type(ProfileNotReady),
        before_sleep=before_sleep_log(logger, logging.INFO),
        reraise=True,
    )
    try:
        for attempt in retrying:
            with attempt:
                profile = crud.get_profile(session=session, account_id=account_id)
                if profile is None:
                    raise ProfileNotReady(account_id)
    except ProfileNotReady:
        logger.warning(f"Profile for account {account_id} not ready, using default profile")
        return Profile(account_id=account_id), True
    return profile, False


def current_state(*, session: Session, account: Account, profile: Profile) -> AccountState:
    """读取当前账户状态（只读，不消费待处理计划）"""
    role = Role.admin if crud.is_admin(session=session, account_id=account.id) else Role.user
    profile_stage = (
        ProfileStage.complete if profile.is_profile_completed else ProfileStage.incomplete
    )
    return AccountState(
        account_id=account.id,
        role=role,
        profile_stage=profile_stage,
        payment_stage=resolve_payment_stage(session=session, profile=profile),
    )


def complete_authentication(
    *,
    session: Session,
    stripe_service: StripeService,
    account: Account,
    mode: CheckoutMode = CheckoutMode.hosted,
) -> ActivationResult:
    """
    认证完成后的状态协调

    Args:
        session: 数据库会话
        stripe_service: Stripe 服务
        account: 刚完成认证的账户
        mode: 需要结账时使用的结账模式

    Returns:
        ActivationResult: 账户状态、跳转目标，以及可能创建的结账会话或失败原因
    """
    profile, is_default = load_profile(session=session, account_id=account.id)

    checkout: CheckoutRedirect | None = None
    checkout_error: str | None = None
    plan = None
    if not is_default:
        plan = crud.consume_pending_plan(session=session, account_id=account.id)
    if plan is not None:
        logger.info(f"Consumed pending {plan.value} plan for account {account.id}")
        try:
            checkout = start_checkout(
                session=session,
                stripe_service=stripe_service,
                plan=plan,
                account=account,
                mode=mode,
            )
        except UpstreamError as e:
            # 计划已经清空，不会在重试时重放旧的意图，失败要告诉前端
            logger.error(f"Post-auth checkout for account {account.id} failed: {e}")
            checkout_error = e.message
        except InvalidStateError as e:
            # 已有有效订阅，计划照样消费掉，拒绝原因交给前端
            logger.info(f"Post-auth checkout for account {account.id} refused: {e.message}")
            checkout_error = e.message

    state = current_state(session=session, account=account, profile=profile)
    destination = Destination.checkout if checkout else next_destination(state)
    return ActivationResult(
        state=state,
        destination=destination,
        checkout=checkout,
        checkout_error=checkout_error,
        profile_is_default=is_default,
    )
