"""
订阅路由模块

- POST /subscription/checkout: 结账编排（未登录返回注册跳转）
- GET /subscription/session-status: 结账返回页查询会话状态（仅提示）
- GET /subscription/status: 当前账户的资料阶段、付费阶段和订阅镜像
- POST /subscription/webhook: Stripe webhook（验签、去重）
"""
from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request

from pullupclub import crud
from pullupclub.api.deps import CurrentUser, OptionalUser, SessionDep, StripeDep
from pullupclub.api.errors import NotFoundError
from pullupclub.api.schemas import (
    ApiEnvelope,
    CheckoutData,
    CheckoutRequest,
    CheckoutSessionStatusData,
    SignupRedirectData,
    SubscriptionPublic,
    SubscriptionStatusData,
    WebhookAckData,
)
from pullupclub.services import activation, checkout, webhooks

router = APIRouter(prefix="/subscription", tags=["subscription"])


async def raw_body(request: Request) -> bytes:
    """签名要用原始请求体校验，不能先解析成模型"""
    return await request.body()


RawBody = Annotated[bytes, Depends(raw_body)]


@router.post("/checkout", response_model=ApiEnvelope)
def create_checkout(
    session: SessionDep,
    stripe_service: StripeDep,
    current_user: OptionalUser,
    body: CheckoutRequest,
) -> ApiEnvelope:
    """
    请求订阅

    请求路径: POST /api/v1/subscription/checkout

    未登录：不调用 Stripe，返回带计划的注册跳转；
    已登录：创建结账会话，返回 url（托管）或 client_secret（嵌入式）。
    """
    result = checkout.request_subscription(
        session=session,
        stripe_service=stripe_service,
        plan=body.plan,
        account=current_user,
        mode=body.mode,
    )
    if isinstance(result, checkout.SignupRedirect):
        return ApiEnvelope(
            data=SignupRedirectData(plan=result.plan, redirect_to=result.redirect_to)
        )
    return ApiEnvelope(data=CheckoutData.model_validate(result))


@router.get("/session-status", response_model=ApiEnvelope)
def session_status(
    session: SessionDep,
    stripe_service: StripeDep,
    current_user: CurrentUser,
    session_id: str,
) -> ApiEnvelope:
    """
    查询结账会话状态

    请求路径: GET /api/v1/subscription/session-status?session_id=cs_...

    返回的 is_paid 来自数据库（webhook 写入），即使 Stripe 显示已支付，
    webhook 到达之前 is_paid 仍为 False。
    """
    checkout_session = stripe_service.retrieve_checkout_session(session_id)
    owner = (checkout_session.get("metadata") or {}).get("user_id")
    if owner is not None and str(owner) != str(current_user.id):
        raise NotFoundError("Checkout session not found")

    profile = crud.get_profile(session=session, account_id=current_user.id)
    details = checkout_session.get("customer_details") or {}
    return ApiEnvelope(
        data=CheckoutSessionStatusData(
            session_id=session_id,
            status=checkout_session.get("status"),
            payment_status=checkout_session.get("payment_status"),
            customer_email=details.get("email") or checkout_session.get("customer_email"),
            is_paid=bool(profile and profile.is_paid),
        )
    )


@router.get("/status", response_model=ApiEnvelope)
def status(session: SessionDep, current_user: CurrentUser) -> ApiEnvelope:
    """
    订阅状态

    请求路径: GET /api/v1/subscription/status
    """
    profile, _ = activation.load_profile(session=session, account_id=current_user.id)
    state = activation.current_state(session=session, account=current_user, profile=profile)
    subscriptions = crud.list_subscriptions_for_account(
        session=session, account_id=current_user.id
    )
    latest = SubscriptionPublic.model_validate(subscriptions[0]) if subscriptions else None
    return ApiEnvelope(
        data=SubscriptionStatusData(
            profile_stage=state.profile_stage,
            payment_stage=state.payment_stage,
            is_paid=bool(profile.is_paid),
            subscription=latest,
        )
    )


@router.post("/webhook", response_model=ApiEnvelope)
def webhook(
    payload: RawBody,
    session: SessionDep,
    stripe_service: StripeDep,
    stripe_signature: str | None = Header(default=None),
) -> ApiEnvelope:
    """
    Stripe webhook

    请求路径: POST /api/v1/subscription/webhook

    处理失败时返回非 2xx，由 Stripe 重投。
    """
    event = stripe_service.construct_event(payload, stripe_signature)
    outcome = webhooks.process_event(session=session, stripe_service=stripe_service, event=event)
    return ApiEnvelope(
        data=WebhookAckData(duplicate=outcome.duplicate, dropped=outcome.dropped)
    )
