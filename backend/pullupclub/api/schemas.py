"""
API 请求/响应数据模型（Schema）

定义所有 API 接口的请求和响应数据结构。
使用 Pydantic 进行数据验证和序列化。

关键概念：
- BaseModel: Pydantic 的模型基类，用于数据验证
- Field: 字段验证器，定义字段的约束（长度、范围等）
- from_attributes: 允许直接从 SQLModel 实例 / dataclass 构建
- 这些模型不是数据库表，只用于 API 数据交换
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from pullupclub.enums import (
    CheckoutMode,
    Destination,
    EligibilityState,
    Gender,
    PaymentStage,
    ProfileStage,
    SubmissionStatus,
    SubscriptionPlan,
    SubscriptionStatus,
    VideoPlatform,
)

# ============================================================
# 通用响应模型
# ============================================================


class Message(BaseModel):
    message: str


class TokenPayload(BaseModel):
    """
    JWT Token 载荷模型

    sub (subject) 存储账户 ID。
    """
    sub: str | None = None


class ApiEnvelope(BaseModel):
    """
    API 统一响应格式

    所有 API 响应都使用这个格式，包含：
    - code: 状态码（0 表示成功，非 0 表示错误）
    - message: 消息（成功时为 "success"，错误时为错误描述）
    - data: 数据（成功时返回业务数据，错误时为 None 或错误详情）

    示例响应：
        {"code": 0, "message": "success", "data": {...}}
        {"code": 409100, "message": "Not eligible to submit a video",
         "data": {"state": "blocked_cooldown", "days_remaining": 16, ...}}
    """
    code: int = 0
    message: str = "success"
    data: Any | None = None


# ============================================================
# 认证
# ============================================================


class SignupRequest(BaseModel):
    """
    注册请求模型

    plan: 注册前在定价页选择的计划，会记录为待处理计划，
          注册完成后由激活状态机消费并创建结账会话
    """
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    plan: SubscriptionPlan | None = None
    mode: CheckoutMode = CheckoutMode.hosted


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    plan: SubscriptionPlan | None = None
    mode: CheckoutMode = CheckoutMode.hosted


class AccountPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str


class CheckoutData(BaseModel):
    """
    结账会话数据

    托管模式返回 url，嵌入式返回 client_secret。
    """
    model_config = ConfigDict(from_attributes=True)

    plan: SubscriptionPlan
    session_id: str
    url: str | None = None
    client_secret: str | None = None


class ActivationData(BaseModel):
    """
    激活状态机的结果

    destination 告诉前端下一步去哪里；
    checkout_error 不为空表示待处理计划已消费但结账会话创建失败，需要用户重试。
    """
    profile_stage: ProfileStage
    payment_stage: PaymentStage
    is_paid: bool
    is_admin: bool
    destination: Destination
    checkout: CheckoutData | None = None
    checkout_error: str | None = None
    profile_is_default: bool = False


class AuthData(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # token 过期时间（秒）
    account: AccountPublic
    activation: ActivationData


# ============================================================
# 个人资料
# ============================================================


class ProfilePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: int
    full_name: str | None = None
    social_handle: str | None = None
    age: int | None = None
    gender: Gender | None = None
    organization: str | None = None
    region: str | None = None
    phone: str | None = None
    is_profile_completed: bool
    is_paid: bool
    pending_subscription_plan: SubscriptionPlan | None = None


class ProfileUpdateRequest(BaseModel):
    """
    更新资料请求模型

    只更新请求中出现的字段，空字符串视为清空。
    付费相关字段不在这里，只能由 webhook 修改。
    """
    full_name: str | None = Field(default=None, max_length=128)
    social_handle: str | None = Field(default=None, max_length=128)
    age: int | None = Field(default=None, ge=1, le=120)
    gender: Gender | None = None
    organization: str | None = Field(default=None, max_length=128)
    region: str | None = Field(default=None, max_length=64)
    phone: str | None = Field(default=None, max_length=32)


# ============================================================
# 订阅
# ============================================================


class CheckoutRequest(BaseModel):
    plan: SubscriptionPlan
    mode: CheckoutMode = CheckoutMode.hosted


class SignupRedirectData(BaseModel):
    """未登录时的结账结果：带着计划去注册"""
    requires_auth: bool = True
    plan: SubscriptionPlan
    redirect_to: str


class CheckoutSessionStatusData(BaseModel):
    """
    结账会话状态（返回页展示用）

    只是临时提示，付费状态以 webhook 写入的 is_paid 为准。
    """
    session_id: str
    status: str | None = None
    payment_status: str | None = None
    customer_email: str | None = None
    is_paid: bool


class SubscriptionPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stripe_subscription_id: str
    plan: SubscriptionPlan | None = None
    status: SubscriptionStatus
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    canceled_at: datetime | None = None


class SubscriptionStatusData(BaseModel):
    profile_stage: ProfileStage
    payment_stage: PaymentStage
    is_paid: bool
    subscription: SubscriptionPublic | None = None


class WebhookAckData(BaseModel):
    received: bool = True
    duplicate: bool = False
    dropped: bool = False


# ============================================================
# 视频提交
# ============================================================


class EligibilityData(BaseModel):
    state: EligibilityState
    days_remaining: int | None = None
    next_eligible_at: datetime | None = None
    pending_submission_id: int | None = None


class SubmissionCreateRequest(BaseModel):
    """
    视频提交请求模型

    个数的正整数校验在服务层完成（返回 ValidationError），这里只约束类型。
    """
    pull_up_count: int
    video_url: str = Field(min_length=1, max_length=512)
    region: str | None = Field(default=None, max_length=64)
    club_affiliation: str | None = Field(default=None, max_length=128)
    gender: Gender | None = None


class SubmissionPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    pull_up_count: int
    actual_pull_up_count: int | None = None
    effective_count: int
    video_url: str
    platform: VideoPlatform
    status: SubmissionStatus
    submitted_at: datetime
    approved_at: datetime | None = None
    notes: str | None = None
    region: str | None = None
    club_affiliation: str | None = None
    gender: str | None = None


class SubmissionsData(BaseModel):
    data: list[SubmissionPublic]
    count: int


class SubmissionPageData(BaseModel):
    data: list[SubmissionPublic]
    count: int  # 符合条件的总数
    page: int
    page_size: int


# ============================================================
# 管理后台
# ============================================================


class ApproveRequest(BaseModel):
    actual_pull_up_count: int


class RejectRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class AdminStatsData(BaseModel):
    total_users: int
    paid_users: int
    pending_submissions: int
    approved_submissions: int
    rejected_submissions: int


# ============================================================
# 徽章与排行榜
# ============================================================


class BadgePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    threshold: int
    description: str


class BadgeProgressData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    pull_up_count: int
    current: BadgePublic | None = None
    next: BadgePublic | None = None
    progress: float
    tier_progress: float
    pull_ups_needed: int


class LeaderboardEntryPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rank: int
    account_id: int
    submission_id: int
    full_name: str
    social_handle: str | None = None
    pull_up_count: int
    gender: str | None = None
    region: str | None = None
    club_affiliation: str | None = None
    submitted_at: datetime
    badge: BadgePublic | None = None


class LeaderboardData(BaseModel):
    data: list[LeaderboardEntryPublic]
    count: int
