"""
管理后台路由模块

所有接口都要求管理员角色（AdminUser 每次查询 admin_roles 表）。
审核接口在服务层会再次校验角色，路由层的依赖只是为了尽早返回 403。
"""
from __future__ import annotations

from fastapi import APIRouter, Query
from sqlmodel import func, select

from pullupclub import crud
from pullupclub.api.deps import AdminUser, SessionDep
from pullupclub.api.schemas import (
    AdminStatsData,
    ApiEnvelope,
    ApproveRequest,
    RejectRequest,
    SubmissionPageData,
    SubmissionPublic,
)
from pullupclub.enums import SubmissionStatus
from pullupclub.models import Account, Profile
from pullupclub.services import submissions as submission_service

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/submissions", response_model=ApiEnvelope)
def list_submissions(
    session: SessionDep,
    admin: AdminUser,
    status: SubmissionStatus | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ApiEnvelope:
    """
    分页查询提交（默认全部状态，最新在前）

    请求路径: GET /api/v1/admin/submissions?status=pending&page=1&page_size=20
    """
    rows, total = crud.list_submissions_page(
        session=session,
        status=status,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    return ApiEnvelope(
        data=SubmissionPageData(
            data=[SubmissionPublic.model_validate(r) for r in rows],
            count=total,
            page=page,
            page_size=page_size,
        )
    )


@router.post("/submissions/{submission_id}/approve", response_model=ApiEnvelope)
def approve_submission(
    session: SessionDep,
    admin: AdminUser,
    submission_id: int,
    body: ApproveRequest,
) -> ApiEnvelope:
    """
    审核通过

    请求路径: POST /api/v1/admin/submissions/{submission_id}/approve

    actual_pull_up_count 是核定个数，之后排行榜和徽章都以它为准。
    """
    submission = submission_service.approve(
        session=session,
        admin_id=admin.id,
        submission_id=submission_id,
        actual_count=body.actual_pull_up_count,
    )
    return ApiEnvelope(data=SubmissionPublic.model_validate(submission))


@router.post("/submissions/{submission_id}/reject", response_model=ApiEnvelope)
def reject_submission(
    session: SessionDep,
    admin: AdminUser,
    submission_id: int,
    body: RejectRequest,
) -> ApiEnvelope:
    submission = submission_service.reject(
        session=session,
        admin_id=admin.id,
        submission_id=submission_id,
        notes=body.notes,
    )
    return ApiEnvelope(data=SubmissionPublic.model_validate(submission))


@router.get("/stats", response_model=ApiEnvelope)
def stats(session: SessionDep, admin: AdminUser) -> ApiEnvelope:
    """后台统计：用户数、付费用户数、各状态提交数"""
    total_users = session.exec(select(func.count()).select_from(Account)).one()
    paid_users = session.exec(
        select(func.count()).select_from(Profile).where(Profile.is_paid == True)  # noqa: E712
    ).one()
    counts = crud.count_submissions_by_status(session=session)
    return ApiEnvelope(
        data=AdminStatsData(
            total_users=total_users,
            paid_users=paid_users,
            pending_submissions=counts[SubmissionStatus.pending.value],
            approved_submissions=counts[SubmissionStatus.approved.value],
            rejected_submissions=counts[SubmissionStatus.rejected.value],
        )
    )
