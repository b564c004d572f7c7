"""
数据库模型定义模块

本模块使用 SQLModel 定义所有数据库表结构。

模型按功能拆分：
- account.py: 账户与管理员角色
- profile.py: 个人资料（含付费状态与待处理订阅计划）
- subscription.py: Stripe 订阅镜像
- submission.py: 视频提交
- stripe_event.py: Stripe webhook 事件
"""
from sqlmodel import SQLModel

from .account import Account, AdminRole
from .base import as_utc, utc_now
from .profile import Profile
from .stripe_event import StripeEvent
from .submission import Submission
from .subscription import Subscription

__all__ = [
    "SQLModel",
    "utc_now",
    "as_utc",
    "Account",
    "AdminRole",
    "Profile",
    "Subscription",
    "Submission",
    "StripeEvent",
]
