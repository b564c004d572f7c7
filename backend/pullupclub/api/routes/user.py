"""
用户路由模块

个人资料的查看与修改。
资料补全（姓名、年龄、性别、地区都已填写）后 is_profile_completed 置为 True，
之后即使清空字段也不会回退。
"""
from __future__ import annotations

from fastapi import APIRouter

from pullupclub import crud
from pullupclub.api.deps import CurrentUser, SessionDep
from pullupclub.api.errors import NotFoundError
from pullupclub.api.schemas import ApiEnvelope, ProfilePublic, ProfileUpdateRequest
from pullupclub.models import Profile, utc_now

router = APIRouter(prefix="/user", tags=["user"])

REQUIRED_PROFILE_FIELDS = ("full_name", "age", "gender", "region")


def has_required_fields(profile: Profile) -> bool:
    return all(getattr(profile, name) not in (None, "") for name in REQUIRED_PROFILE_FIELDS)


@router.get("/profile", response_model=ApiEnvelope)
def profile(session: SessionDep, current_user: CurrentUser) -> ApiEnvelope:
    """
    获取个人资料

    请求路径: GET /api/v1/user/profile
    """
    row = crud.get_profile(session=session, account_id=current_user.id)
    if not row:
        raise NotFoundError("Profile not found")
    return ApiEnvelope(data=ProfilePublic.model_validate(row))


@router.put("/profile", response_model=ApiEnvelope)
def update_profile(
    session: SessionDep,
    current_user: CurrentUser,
    body: ProfileUpdateRequest,
) -> ApiEnvelope:
    """
    更新个人资料

    请求路径: PUT /api/v1/user/profile

    只更新请求中出现的字段，字符串去除首尾空格，空字符串转换为 None。
    """
    row = crud.get_profile(session=session, account_id=current_user.id)
    if not row:
        raise NotFoundError("Profile not found")

    for name, value in body.model_dump(exclude_unset=True).items():
        if isinstance(value, str):
            value = value.strip() or None
        setattr(row, name, value)

    if not row.is_profile_completed and has_required_fields(row):
        row.is_profile_completed = True
    row.updated_at = utc_now()
    session.add(row)
    session.commit()
    session.refresh(row)
    return ApiEnvelope(data=ProfilePublic.model_validate(row))
