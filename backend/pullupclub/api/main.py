"""
API 路由聚合模块

将所有业务路由模块聚合到一个统一的 router 中，
由 pullupclub/main.py 以 /api/v1 前缀注册到主应用。

路由模块说明：
- auth: 注册、登录、会话恢复（含激活状态机）
- user: 个人资料
- subscription: 结账、会话状态、订阅状态、Stripe webhook
- submissions: 提交资格、视频提交、提交历史
- admin: 审核、统计（需要管理员角色）
- leaderboard: 排行榜（公开）与徽章进度
- utils: 健康检查
"""
from fastapi import APIRouter

from pullupclub.api.routes import (
    admin,
    auth,
    leaderboard,
    submissions,
    subscription,
    user,
    utils,
)

api_router = APIRouter()

api_router.include_router(auth.router)  # /auth/*
api_router.include_router(user.router)  # /user/*
api_router.include_router(subscription.router)  # /subscription/*
api_router.include_router(submissions.router)  # /submissions/*
api_router.include_router(admin.router)  # /admin/*
api_router.include_router(leaderboard.router)  # /leaderboard, /badges/*
api_router.include_router(utils.router)  # /utils/*
