"""
枚举类型定义模块

定义应用中使用的所有枚举类型。
所有枚举都继承自 str 和 Enum，这样既可以用作字符串，又具有枚举的特性。
"""
from enum import Enum


class Role(str, Enum):
    """
    账户角色

    角色不持久化在账户上，由 admin_roles 表推导：
    - user: 普通会员
    - admin: 管理员（可审核视频）
    """
    user = "user"
    admin = "admin"


class SubscriptionPlan(str, Enum):
    """
    会员订阅计划

    - monthly: 月度会员
    - annual: 年度会员
    """
    monthly = "monthly"
    annual = "annual"


class CheckoutMode(str, Enum):
    """
    Stripe 结账模式

    - hosted: 跳转到 Stripe 托管页面（返回 URL）
    - embedded: 嵌入式结账（返回 client_secret）
    """
    hosted = "hosted"
    embedded = "embedded"


class SubscriptionStatus(str, Enum):
    """
    订阅状态枚举

    与 Stripe Subscription.status 一一对应。
    """
    active = "active"
    past_due = "past_due"
    canceled = "canceled"
    trialing = "trialing"
    incomplete = "incomplete"
    incomplete_expired = "incomplete_expired"
    unpaid = "unpaid"
    paused = "paused"


# 视为"已付费"的订阅状态
ACTIVE_SUBSCRIPTION_STATUSES = (SubscriptionStatus.active, SubscriptionStatus.trialing)


class SubmissionStatus(str, Enum):
    """
    视频提交状态枚举

    - pending: 待审核（每个账户同一时间最多一条）
    - approved: 审核通过
    - rejected: 审核拒绝（不会再变更，重新提交会创建新记录）
    """
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class VideoPlatform(str, Enum):
    """视频所在平台，other 表示可识别的通用 http(s) 链接"""
    youtube = "youtube"
    instagram = "instagram"
    tiktok = "tiktok"
    facebook = "facebook"
    other = "other"


class Gender(str, Enum):
    male = "Male"
    female = "Female"
    other = "Other"


class ProfileStage(str, Enum):
    """资料完成阶段（单向：incomplete -> complete）"""
    incomplete = "incomplete"
    complete = "complete"


class PaymentStage(str, Enum):
    """
    付费阶段

    - unpaid: 未付费（任何不确定情况的默认值）
    - active: 订阅有效
    - past_due: 扣款失败，等待补缴
    - canceled: 已取消，需要重新订阅
    """
    unpaid = "unpaid"
    active = "active"
    past_due = "past_due"
    canceled = "canceled"


class Destination(str, Enum):
    """
    认证完成后前端应跳转的目标

    - checkout: 跳转到 Stripe 结账（待处理计划已消费）
    - complete_profile: 补全个人资料
    - subscription: 订阅/付费墙页面
    - billing: 更新付款方式（past_due）
    - profile: 会员主页
    - admin_dashboard: 管理后台
    """
    checkout = "checkout"
    complete_profile = "complete_profile"
    subscription = "subscription"
    billing = "billing"
    profile = "profile"
    admin_dashboard = "admin_dashboard"


class EligibilityState(str, Enum):
    """
    视频提交资格

    - eligible: 可以提交
    - blocked_pending: 已有待审核的提交
    - blocked_cooldown: 最近一次通过审核的提交仍在冷却期内
    """
    eligible = "eligible"
    blocked_pending = "blocked_pending"
    blocked_cooldown = "blocked_cooldown"
