"""
徽章计算

徽章不持久化，是 (有效个数, 性别) 的纯函数。
男女各有一张按门槛升序排列的五级徽章表：
- current: 已达到的最高一级
- next: 下一级（已到顶则为 None）
- tier_progress: 当前级到下一级之间的线性进度（还没有徽章时按第一级门槛计算）
- progress: 整体进度，五级各占 1/5，随个数单调不减，达到最高门槛即为 100
"""
from __future__ import annotations

from dataclasses import dataclass

from pullupclub.enums import Gender


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    threshold: int
    description: str


@dataclass(frozen=True)
class BadgeProgress:
    current: Badge | None
    next: Badge | None
    progress: float
    tier_progress: float
    pull_ups_needed: int


def _table(thresholds: tuple[int, ...]) -> tuple[Badge, ...]:
    names = ("Recruit", "Proven", "Hardened", "Operator", "Elite")
    return tuple(
        Badge(
            id=name.lower(),
            name=name,
            threshold=value,
            description=f"Requires {value} pull-ups in a single set",
        )
        for name, value in zip(names, thresholds)
    )


MALE_BADGES = _table((5, 10, 15, 20, 25))
FEMALE_BADGES = _table((1, 3, 7, 12, 20))


def badges_for(gender: Gender | str | None) -> tuple[Badge, ...]:
    """Female 使用女子门槛，其余（含未填写）使用男子门槛"""
    value = getattr(gender, "value", gender)
    if isinstance(value, str) and value.lower() == Gender.female.value.lower():
        return FEMALE_BADGES
    return MALE_BADGES


def _clamp(value: float) -> float:
    return min(100.0, max(0.0, value))


def calculate_badge_progress(count: int, gender: Gender | str | None = None) -> BadgeProgress:
    """
    计算徽章进度

    Args:
        count: 有效个数（审核核定值优先）
        gender: 性别

    Returns:
        BadgeProgress
    """
    table = badges_for(gender)
    count = max(0, int(count))

    earned = [b for b in table if count >= b.threshold]
    current = earned[-1] if earned else None
    upcoming = [b for b in table if count < b.threshold]
    next_badge = upcoming[0] if upcoming else None

    if next_badge is None:
        return BadgeProgress(
            current=current, next=None, progress=100.0, tier_progress=100.0, pull_ups_needed=0
        )

    floor = current.threshold if current else 0
    tier_progress = _clamp((count - floor) / (next_badge.threshold - floor) * 100)
    progress = _clamp((len(earned) + tier_progress / 100) / len(table) * 100)
    return BadgeProgress(
        current=current,
        next=next_badge,
        progress=round(progress, 2),
        tier_progress=round(tier_progress, 2),
        pull_ups_needed=next_badge.threshold - count,
    )


def current_badge(count: int, gender: Gender | str | None = None) -> Badge | None:
    return calculate_badge_progress(count, gender).current
