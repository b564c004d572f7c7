"""
排行榜

只统计审核通过的提交，每个账户取一条最好成绩（有效个数最大，
相同时取更早提交的一条）。排名采用并列名次（1, 1, 3）。
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlmodel import Session, col, func, select

from pullupclub.enums import SubmissionStatus
from pullupclub.models import Profile, Submission, as_utc
from pullupclub.services.badges import Badge, current_badge


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    account_id: int
    submission_id: int
    full_name: str
    social_handle: str | None
    pull_up_count: int
    gender: str | None
    region: str | None
    club_affiliation: str | None
    submitted_at: datetime
    badge: Badge | None


def _best_per_account(submissions: list[Submission]) -> list[Submission]:
    ordered = sorted(
        submissions,
        key=lambda s: (-s.effective_count, as_utc(s.submitted_at), s.id),
    )
    seen: set[int] = set()
    best = []
    for sub in ordered:
        if sub.account_id not in seen:
            seen.add(sub.account_id)
            best.append(sub)
    return best


def get_leaderboard(
    *,
    session: Session,
    gender: str | None = None,
    region: str | None = None,
    club: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[LeaderboardEntry], int]:
    """
    查询排行榜

    Args:
        gender / region / club: 可选筛选（不区分大小写）
        limit / offset: 分页

    Returns:
        (当前页, 上榜账户总数)
    """
    statement = select(Submission).where(
        Submission.status == SubmissionStatus.approved.value
    )
    if gender:
        statement = statement.where(func.lower(col(Submission.gender)) == gender.lower())
    if region:
        statement = statement.where(func.lower(col(Submission.region)) == region.lower())
    if club:
        statement = statement.where(
            func.lower(col(Submission.club_affiliation)) == club.lower()
        )
    ranked = _best_per_account(list(session.exec(statement).all()))

    page = ranked[offset : offset + limit]
    account_ids = [s.account_id for s in page]
    profiles = {
        p.account_id: p
        for p in session.exec(
            select(Profile).where(col(Profile.account_id).in_(account_ids))
        ).all()
    } if account_ids else {}

    # 并列名次：与前一名个数相同则名次相同
    ranks: list[int] = []
    for index, sub in enumerate(ranked[: offset + limit]):
        if index and sub.effective_count == ranked[index - 1].effective_count:
            ranks.append(ranks[-1])
        else:
            ranks.append(index + 1)

    entries = []
    for position, sub in enumerate(page, start=offset):
        profile = profiles.get(sub.account_id)
        entries.append(
            LeaderboardEntry(
                rank=ranks[position],
                account_id=sub.account_id,
                submission_id=sub.id,
                full_name=(profile.full_name if profile else None) or "Anonymous",
                social_handle=profile.social_handle if profile else None,
                pull_up_count=sub.effective_count,
                gender=sub.gender,
                region=sub.region,
                club_affiliation=sub.club_affiliation,
                submitted_at=sub.submitted_at,
                badge=current_badge(sub.effective_count, sub.gender),
            )
        )
    return entries, len(ranked)
