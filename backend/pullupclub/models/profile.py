"""
个人资料模型模块
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlmodel import Field, SQLModel

from pullupclub.enums import Gender, SubscriptionPlan

from .base import utc_now


class Profile(SQLModel, table=True):
    """
    个人资料模型

    与账户一对一，注册时一并创建。
    用户可以自行修改资料字段；付费相关字段（is_paid、stripe_customer_id、
    pending_subscription_plan）只由激活状态机和 webhook 修改。

    字段说明：
    - account_id: 主键，同时是 accounts.id 外键
    - full_name / social_handle / age / gender / organization / region / phone: 资料
    - is_profile_completed: 资料是否已补全（单向，一旦为 True 不再回退）
    - is_paid: 是否已付费（只由 webhook 设置）
    - stripe_customer_id: Stripe 客户 ID，webhook 用它反查账户
    - pending_subscription_plan: 登录前选择的订阅计划，认证完成后消费一次
    - pending_plan_set_at: 记录待处理计划的时间
    """
    __tablename__ = "profiles"
    account_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True
        )
    )

    full_name: str | None = Field(default=None, max_length=128)
    social_handle: str | None = Field(default=None, max_length=128)
    age: int | None = Field(default=None)
    gender: Gender | None = Field(
        default=None, sa_column=Column(String(16), nullable=True)
    )
    organization: str | None = Field(default=None, max_length=128)
    region: str | None = Field(default=None, max_length=64)
    phone: str | None = Field(default=None, max_length=32)

    is_profile_completed: bool = Field(default=False)
    is_paid: bool = Field(default=False)
    stripe_customer_id: str | None = Field(
        default=None,
        sa_column=Column(String(64), unique=True, index=True, nullable=True),
    )
    pending_subscription_plan: SubscriptionPlan | None = Field(
        default=None, sa_column=Column(String(16), nullable=True)
    )
    pending_plan_set_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
