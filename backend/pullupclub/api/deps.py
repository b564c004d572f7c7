"""
FastAPI 依赖注入模块

提供可复用的依赖项，用于路由处理函数中：
- SessionDep: 数据库会话
- CurrentUser: 必须登录的当前账户
- OptionalUser: 可选登录（结账接口未登录时走注册跳转）
- AdminUser: 管理员账户（每次都查询 admin_roles 表，不信任 token 中的任何声明）
- StripeDep: Stripe 服务（测试中通过 dependency_overrides 替换）
"""
from collections.abc import Generator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError as PydanticValidationError
from sqlmodel import Session

from pullupclub import crud
from pullupclub.api.errors import ForbiddenError
from pullupclub.api.schemas import TokenPayload
from pullupclub.core import security
from pullupclub.core.config import settings
from pullupclub.core.db import engine
from pullupclub.models import Account
from pullupclub.services.stripe_service import StripeService, get_stripe_service

# 从请求头 Authorization: Bearer <token> 中提取 token
# auto_error=False：缺失时由下面的依赖统一返回 401
reusable_oauth2 = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """
    获取数据库会话（依赖注入）

    使用 yield 确保会话在请求结束后自动关闭。
    """
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]
TokenDep = Annotated[HTTPAuthorizationCredentials | None, Depends(reusable_oauth2)]
StripeDep = Annotated[StripeService, Depends(get_stripe_service)]


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _account_from_token(session: Session, token: str) -> Account:
    """解析 JWT 并查询账户，任何失败都是 401"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[security.ALGORITHM])
        token_data = TokenPayload(**payload)
    except (InvalidTokenError, PydanticValidationError):
        raise _credentials_error()
    if not token_data.sub:
        raise _credentials_error()
    try:
        account_id = int(token_data.sub)
    except ValueError:
        raise _credentials_error()
    account = session.get(Account, account_id)
    if not account:
        raise _credentials_error("Account not found")
    return account


def get_current_account(session: SessionDep, token: TokenDep) -> Account:
    """
    获取当前登录账户（依赖注入）

    Raises:
        HTTPException: 401，token 缺失、无效或账户不存在
    """
    if token is None:
        raise _credentials_error("Not authenticated")
    return _account_from_token(session, token.credentials)


def get_optional_account(session: SessionDep, token: TokenDep) -> Account | None:
    """没有 token 时返回 None；带了 token 但无效仍然是 401"""
    if token is None:
        return None
    return _account_from_token(session, token.credentials)


CurrentUser = Annotated[Account, Depends(get_current_account)]
OptionalUser = Annotated[Account | None, Depends(get_optional_account)]


def get_admin_account(session: SessionDep, current_user: CurrentUser) -> Account:
    """
    要求管理员角色

    Raises:
        ForbiddenError: 403，admin_roles 中没有该账户
    """
    if not crud.is_admin(session=session, account_id=current_user.id):
        raise ForbiddenError()
    return current_user


AdminUser = Annotated[Account, Depends(get_admin_account)]
