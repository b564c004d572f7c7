from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlmodel import Session

from pullupclub import crud
from pullupclub.enums import SubmissionStatus, VideoPlatform
from pullupclub.models import Profile, Submission
from pullupclub.services.leaderboard import get_leaderboard

BASE = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _member(db: Session, email: str, full_name: str | None = None):
    account = crud.create_account(session=db, email=email, password="password123")
    if full_name:
        profile = db.get(Profile, account.id)
        profile.full_name = full_name
        profile.social_handle = f"@{full_name.lower()}"
        db.add(profile)
        db.commit()
    return account


def _submission(
    db: Session,
    account_id: int,
    count: int,
    *,
    status: SubmissionStatus = SubmissionStatus.approved,
    actual: int | None = None,
    days: int = 0,
    gender: str = "Male",
    region: str | None = "West",
    club: str | None = None,
) -> Submission:
    row = Submission(
        account_id=account_id,
        pull_up_count=count,
        actual_pull_up_count=actual,
        video_url="https://youtu.be/x",
        platform=VideoPlatform.youtube.value,
        status=status.value,
        submitted_at=BASE + timedelta(days=days),
        gender=gender,
        region=region,
        club_affiliation=club,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def test_only_approved_best_per_account(db):
    alice = _member(db, "alice@example.com", "Alice")
    bob = _member(db, "bob@example.com", "Bob")

    _submission(db, alice.id, 12, days=0)
    best = _submission(db, alice.id, 30, actual=22, days=40)
    _submission(db, alice.id, 40, status=SubmissionStatus.pending, days=80)
    _submission(db, bob.id, 50, status=SubmissionStatus.rejected)
    _submission(db, bob.id, 15, days=5)

    entries, total = get_leaderboard(session=db)
    assert total == 2
    assert [(e.full_name, e.pull_up_count) for e in entries] == [("Alice", 22), ("Bob", 15)]
    assert entries[0].submission_id == best.id
    assert entries[0].social_handle == "@alice"
    assert entries[0].badge.name == "Operator"
    assert entries[1].badge.name == "Hardened"


def test_ties_share_rank(db):
    first = _member(db, "first@example.com", "First")
    second = _member(db, "second@example.com", "Second")
    third = _member(db, "third@example.com")

    _submission(db, second.id, 18, days=2)
    _submission(db, first.id, 18, days=1)
    _submission(db, third.id, 9, days=0)

    entries, _ = get_leaderboard(session=db)
    # 同分时更早提交的排在前面
    assert [e.full_name for e in entries] == ["First", "Second", "Anonymous"]
    assert [e.rank for e in entries] == [1, 1, 3]

    page, total = get_leaderboard(session=db, limit=1, offset=1)
    assert total == 3
    assert [(e.full_name, e.rank) for e in page] == [("Second", 1)]


def test_filters_are_case_insensitive(db):
    east = _member(db, "east@example.com", "East")
    west = _member(db, "west@example.com", "West")
    female = _member(db, "female@example.com", "Fem")

    _submission(db, east.id, 10, region="East", club="Iron Club")
    _submission(db, west.id, 11, region="West")
    _submission(db, female.id, 8, gender="Female", region="East")

    entries, _ = get_leaderboard(session=db, region="east")
    assert {e.full_name for e in entries} == {"East", "Fem"}

    entries, _ = get_leaderboard(session=db, gender="female")
    assert [e.full_name for e in entries] == ["Fem"]
    # 女子门槛：8 个达到 Hardened
    assert entries[0].badge.name == "Hardened"

    entries, _ = get_leaderboard(session=db, club="IRON CLUB")
    assert [e.full_name for e in entries] == ["East"]

    entries, total = get_leaderboard(session=db, region="North")
    assert (entries, total) == ([], 0)


def test_leaderboard_endpoint_is_public(client, db):
    member = _member(db, "public@example.com", "Public")
    _submission(db, member.id, 6)

    r = client.get("/api/v1/leaderboard?gender=Male&limit=10")
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["count"] == 1
    row = data["data"][0]
    assert row["full_name"] == "Public"
    assert row["badge"]["id"] == "recruit"

    assert client.get("/api/v1/leaderboard?limit=0").status_code == 422


def test_badge_progress_without_approved_submission(client):
    r = client.post(
        "/api/v1/auth/signup", json={"email": "fresh@example.com", "password": "password123"}
    )
    headers = {"Authorization": f"Bearer {r.json()['data']['access_token']}"}
    r = client.get("/api/v1/badges/progress", headers=headers)
    data = r.json()["data"]
    assert data["pull_up_count"] == 0
    assert data["current"] is None
    assert data["next"]["name"] == "Recruit"
    assert data["progress"] == 0

    assert client.get("/api/v1/badges/progress").status_code == 401
