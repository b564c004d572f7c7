"""
订阅模型模块

定义 Stripe 订阅的本地镜像表。
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlmodel import Field, SQLModel

from pullupclub.enums import SubscriptionPlan, SubscriptionStatus

from .base import utc_now


class Subscription(SQLModel, table=True):
    """
    订阅记录模型

    只由 Stripe webhook 创建和更新，应用其他地方只读。
    以 stripe_subscription_id 唯一，webhook 重复投递时按它 upsert，
    同一账户可以有多条历史记录。

    字段说明：
    - id: 主键
    - account_id: 账户 ID（外键）
    - stripe_subscription_id: Stripe 订阅 ID（唯一）
    - stripe_customer_id: Stripe 客户 ID
    - plan: 订阅计划（按价格 ID 推断，无法识别时为空）
    - status: 订阅状态（与 Stripe 一致）
    - current_period_start / current_period_end: 当前计费周期
    - canceled_at: 取消时间
    """
    __tablename__ = "subscriptions"
    id: int | None = Field(default=None, primary_key=True)
    account_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("accounts.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )

    stripe_subscription_id: str = Field(
        sa_column=Column(String(64), unique=True, index=True, nullable=False)
    )
    stripe_customer_id: str | None = Field(default=None, max_length=64)
    plan: SubscriptionPlan | None = Field(
        default=None, sa_column=Column(String(16), nullable=True)
    )

    status: SubscriptionStatus = Field(sa_column=Column(String(24), nullable=False))

    current_period_start: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    current_period_end: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    canceled_at: datetime | None = Field(
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
