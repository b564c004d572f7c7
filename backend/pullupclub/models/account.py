"""
账户模型模块

定义账户（身份记录）与管理员角色表。
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlmodel import Field, SQLModel

from .base import utc_now


class Account(SQLModel, table=True):
    """
    账户模型

    存储登录凭证，注册时创建，本服务不会删除账户。
    角色不存储在这里，管理员身份只由 admin_roles 表决定。

    字段说明：
    - id: 主键（自增）
    - email: 登录邮箱（唯一且建立索引）
    - hashed_password: bcrypt 密码哈希
    - created_at: 创建时间
    """
    __tablename__ = "accounts"
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(
        sa_column=Column(String(255), unique=True, index=True, nullable=False),
    )
    hashed_password: str = Field(max_length=255)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class AdminRole(SQLModel, table=True):
    """
    管理员角色表

    一行即代表该账户拥有管理员权限，是审核操作的唯一授权来源。
    """
    __tablename__ = "admin_roles"
    account_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True
        )
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
