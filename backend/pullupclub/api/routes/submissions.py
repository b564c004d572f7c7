"""
视频提交路由模块

- GET /submissions/eligibility: 当前能否提交（冷却期返回剩余天数）
- POST /submissions: 提交视频（进入待审核）
- GET /submissions/mine: 自己的提交历史
"""
from __future__ import annotations

from fastapi import APIRouter

from pullupclub import crud
from pullupclub.api.deps import CurrentUser, SessionDep
from pullupclub.api.schemas import (
    ApiEnvelope,
    EligibilityData,
    SubmissionCreateRequest,
    SubmissionPublic,
    SubmissionsData,
)
from pullupclub.services import submissions as submission_service

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.get("/eligibility", response_model=ApiEnvelope)
def eligibility(session: SessionDep, current_user: CurrentUser) -> ApiEnvelope:
    result = submission_service.check_eligibility(session=session, account_id=current_user.id)
    return ApiEnvelope(data=EligibilityData.model_validate(result, from_attributes=True))


@router.post("", response_model=ApiEnvelope)
def create_submission(
    session: SessionDep,
    current_user: CurrentUser,
    body: SubmissionCreateRequest,
) -> ApiEnvelope:
    """
    提交视频

    请求路径: POST /api/v1/submissions

    错误：
    - 400: 个数不是正整数 / 视频链接无法识别
    - 409: 已有待审核提交或仍在冷却期（data 中带资格详情）
    """
    submission = submission_service.submit(
        session=session,
        account=current_user,
        pull_up_count=body.pull_up_count,
        video_url=body.video_url,
        region=body.region,
        club_affiliation=body.club_affiliation,
        gender=body.gender.value if body.gender else None,
    )
    return ApiEnvelope(data=SubmissionPublic.model_validate(submission))


@router.get("/mine", response_model=ApiEnvelope)
def my_submissions(session: SessionDep, current_user: CurrentUser) -> ApiEnvelope:
    rows = crud.list_submissions_for_account(session=session, account_id=current_user.id)
    return ApiEnvelope(
        data=SubmissionsData(
            data=[SubmissionPublic.model_validate(r) for r in rows],
            count=len(rows),
        )
    )
