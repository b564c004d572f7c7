"""
认证路由模块

注册、登录、会话恢复。三者在认证完成后都进入激活状态机：
消费待处理计划（可能创建结账会话）并计算前端下一步跳转的位置。
"""
from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter
from sqlmodel import Session

from pullupclub import crud
from pullupclub.api.deps import CurrentUser, SessionDep, StripeDep
from pullupclub.api.errors import AppError
from pullupclub.api.schemas import (
    AccountPublic,
    ActivationData,
    ApiEnvelope,
    AuthData,
    CheckoutData,
    LoginRequest,
    SignupRequest,
)
from pullupclub.core import security
from pullupclub.core.config import settings
from pullupclub.enums import CheckoutMode, Role, SubscriptionPlan
from pullupclub.models import Account
from pullupclub.services.activation import ActivationResult, complete_authentication
from pullupclub.services.stripe_service import StripeService

router = APIRouter(prefix="/auth", tags=["auth"])


def activation_data(result: ActivationResult) -> ActivationData:
    checkout = None
    if result.checkout:
        checkout = CheckoutData.model_validate(result.checkout)
    return ActivationData(
        profile_stage=result.state.profile_stage,
        payment_stage=result.state.payment_stage,
        is_paid=result.state.is_paid,
        is_admin=result.state.role == Role.admin,
        destination=result.destination,
        checkout=checkout,
        checkout_error=result.checkout_error,
        profile_is_default=result.profile_is_default,
    )


def _authenticated(
    *,
    session: Session,
    stripe_service: StripeService,
    account: Account,
    mode: CheckoutMode,
    plan: SubscriptionPlan | None = None,
) -> AuthData:
    """记录登录前选择的计划（如果有），签发 token 并运行激活状态机"""
    if plan is not None:
        crud.record_pending_plan(session=session, account_id=account.id, plan=plan)

    access_token_expires = timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)
    token = security.create_access_token(account.id, expires_delta=access_token_expires)
    result = complete_authentication(
        session=session, stripe_service=stripe_service, account=account, mode=mode
    )
    return AuthData(
        access_token=token,
        expires_in=int(access_token_expires.total_seconds()),
        account=AccountPublic.model_validate(account),
        activation=activation_data(result),
    )


@router.post("/signup", response_model=ApiEnvelope)
def signup(session: SessionDep, stripe_service: StripeDep, body: SignupRequest) -> ApiEnvelope:
    """
    注册

    请求路径: POST /api/v1/auth/signup

    带 plan 注册时计划先写入 pending_subscription_plan，
    随后的激活流程立即消费它并返回结账会话（activation.destination == "checkout"）。
    """
    if crud.get_account_by_email(session=session, email=body.email):
        raise AppError(code=409001, message="Email already registered", status_code=409)
    account = crud.create_account(session=session, email=body.email, password=body.password)
    data = _authenticated(
        session=session,
        stripe_service=stripe_service,
        account=account,
        mode=body.mode,
        plan=body.plan,
    )
    return ApiEnvelope(data=data)


@router.post("/login", response_model=ApiEnvelope)
def login(session: SessionDep, stripe_service: StripeDep, body: LoginRequest) -> ApiEnvelope:
    """
    登录

    请求路径: POST /api/v1/auth/login

    带 plan 登录时，只有当前没有待处理计划才会记录（不覆盖未消费的意图）。
    """
    account = crud.authenticate_account(
        session=session, email=body.email, password=body.password
    )
    if not account:
        raise AppError(code=401001, message="Incorrect email or password", status_code=401)
    data = _authenticated(
        session=session,
        stripe_service=stripe_service,
        account=account,
        mode=body.mode,
        plan=body.plan,
    )
    return ApiEnvelope(data=data)


@router.get("/session", response_model=ApiEnvelope)
def restore_session(
    session: SessionDep,
    stripe_service: StripeDep,
    current_user: CurrentUser,
    mode: CheckoutMode = CheckoutMode.hosted,
) -> ApiEnvelope:
    """
    会话恢复（页面刷新 / 重新打开）

    请求路径: GET /api/v1/auth/session

    重复调用是安全的：待处理计划已被消费后不会再创建结账会话。
    """
    result = complete_authentication(
        session=session, stripe_service=stripe_service, account=current_user, mode=mode
    )
    return ApiEnvelope(
        data={
            "account": AccountPublic.model_validate(current_user),
            "activation": activation_data(result),
        }
    )
