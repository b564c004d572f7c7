"""
工具路由模块

提供健康检查等系统端点。
"""
from fastapi import APIRouter
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from pullupclub.api.deps import SessionDep
from pullupclub.api.errors import UpstreamError

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
def health_check(session: SessionDep) -> bool:
    """
    健康检查端点

    请求路径: GET /api/v1/utils/health-check/

    数据库可用时返回 True，不可用时返回 502（负载均衡器据此摘除实例）。
    """
    try:
        session.exec(select(1))
    except SQLAlchemyError:
        raise UpstreamError(collaborator="database", operation="health_check")
    return True
