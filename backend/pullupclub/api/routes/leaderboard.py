"""
排行榜与徽章路由模块

排行榜公开访问；徽章进度需要登录，按自己最好的审核通过成绩计算。
"""
from __future__ import annotations

from fastapi import APIRouter, Query

from pullupclub import crud
from pullupclub.api.deps import CurrentUser, SessionDep
from pullupclub.api.schemas import (
    ApiEnvelope,
    BadgeProgressData,
    BadgePublic,
    LeaderboardData,
    LeaderboardEntryPublic,
)
from pullupclub.enums import SubmissionStatus
from pullupclub.services.badges import calculate_badge_progress
from pullupclub.services.leaderboard import get_leaderboard

router = APIRouter(tags=["leaderboard"])


@router.get("/leaderboard", response_model=ApiEnvelope)
def leaderboard(
    session: SessionDep,
    gender: str | None = None,
    region: str | None = None,
    club: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> ApiEnvelope:
    """
    排行榜

    请求路径: GET /api/v1/leaderboard?gender=Male&region=...&club=...
    """
    entries, total = get_leaderboard(
        session=session,
        gender=gender,
        region=region,
        club=club,
        limit=limit,
        offset=offset,
    )
    return ApiEnvelope(
        data=LeaderboardData(
            data=[LeaderboardEntryPublic.model_validate(e) for e in entries],
            count=total,
        )
    )


@router.get("/badges/progress", response_model=ApiEnvelope)
def badge_progress(session: SessionDep, current_user: CurrentUser) -> ApiEnvelope:
    """
    徽章进度

    请求路径: GET /api/v1/badges/progress

    没有审核通过的提交时按 0 个计算。
    """
    profile = crud.get_profile(session=session, account_id=current_user.id)
    approved = [
        s
        for s in crud.list_submissions_for_account(session=session, account_id=current_user.id)
        if s.status == SubmissionStatus.approved
    ]
    best = max((s.effective_count for s in approved), default=0)
    gender = profile.gender if profile else None

    result = calculate_badge_progress(best, gender)
    return ApiEnvelope(
        data=BadgeProgressData(
            pull_up_count=best,
            current=BadgePublic.model_validate(result.current) if result.current else None,
            next=BadgePublic.model_validate(result.next) if result.next else None,
            progress=result.progress,
            tier_progress=result.tier_progress,
            pull_ups_needed=result.pull_ups_needed,
        )
    )
