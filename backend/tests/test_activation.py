from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, update

from conftest import auth_headers, signup
from pullupclub import crud
from pullupclub.enums import (
    Destination,
    PaymentStage,
    ProfileStage,
    Role,
    SubscriptionPlan,
    SubscriptionStatus,
)
from pullupclub.models import AdminRole, Profile, Subscription
from pullupclub.services import activation
from pullupclub.services.activation import AccountState, next_destination, payment_stage_for


def _state(
    role: Role = Role.user,
    profile_stage: ProfileStage = ProfileStage.complete,
    payment_stage: PaymentStage = PaymentStage.active,
) -> AccountState:
    return AccountState(
        account_id=1, role=role, profile_stage=profile_stage, payment_stage=payment_stage
    )


def _sub(status: str, sub_id: str = "sub_x") -> Subscription:
    return Subscription(account_id=1, stripe_subscription_id=sub_id, status=status)


def _account(db: Session, email: str = "state@example.com"):
    return crud.create_account(session=db, email=email, password="password123")


def _complete(db: Session, account_id: int, **values) -> Profile:
    profile = db.get(Profile, account_id)
    profile.full_name = "Test Athlete"
    profile.is_profile_completed = True
    for key, value in values.items():
        setattr(profile, key, value)
    db.add(profile)
    db.commit()
    return profile


@pytest.mark.parametrize(
    ("state", "expected"),
    [
        (_state(role=Role.admin, profile_stage=ProfileStage.incomplete), Destination.admin_dashboard),
        (_state(profile_stage=ProfileStage.incomplete), Destination.complete_profile),
        (
            _state(profile_stage=ProfileStage.incomplete, payment_stage=PaymentStage.unpaid),
            Destination.complete_profile,
        ),
        (_state(payment_stage=PaymentStage.unpaid), Destination.subscription),
        (_state(payment_stage=PaymentStage.canceled), Destination.subscription),
        (_state(payment_stage=PaymentStage.past_due), Destination.billing),
        (_state(), Destination.profile),
    ],
)
def test_next_destination(state: AccountState, expected: Destination):
    assert next_destination(state) == expected


def test_payment_stage_for():
    assert payment_stage_for([], is_paid=False) == PaymentStage.unpaid
    assert payment_stage_for([], is_paid=True) == PaymentStage.active
    assert payment_stage_for([_sub("trialing")], is_paid=False) == PaymentStage.active
    # 任意一条有效订阅即视为付费
    assert (
        payment_stage_for([_sub("canceled", "a"), _sub("active", "b")], is_paid=False)
        == PaymentStage.active
    )
    assert payment_stage_for([_sub("past_due")], is_paid=True) == PaymentStage.past_due
    assert payment_stage_for([_sub("unpaid")], is_paid=True) == PaymentStage.past_due
    assert payment_stage_for([_sub("canceled")], is_paid=True) == PaymentStage.canceled
    assert payment_stage_for([_sub("incomplete_expired")], is_paid=False) == PaymentStage.canceled
    assert payment_stage_for([_sub("incomplete")], is_paid=True) == PaymentStage.unpaid


def test_payment_stage_defaults_to_unpaid_on_query_failure(db, monkeypatch):
    account = _account(db)
    profile = _complete(db, account.id, is_paid=True)

    def _boom(**kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(crud, "list_subscriptions_for_account", _boom)
    stage = activation.resolve_payment_stage(session=db, profile=profile)
    assert stage == PaymentStage.unpaid


def test_load_profile_retries_until_row_exists(db, monkeypatch):
    account = _account(db)
    real_get = crud.get_profile
    calls = []

    def _late_profile(*, session, account_id):
        calls.append(account_id)
        if len(calls) < 3:
            return None
        return real_get(session=session, account_id=account_id)

    monkeypatch.setattr(crud, "get_profile", _late_profile)
    profile, is_default = activation.load_profile(session=db, account_id=account.id)
    assert is_default is False
    assert profile.account_id == account.id
    assert len(calls) == 3


def test_load_profile_falls_back_to_default(db, monkeypatch):
    account = _account(db)
    calls = []

    def _missing(*, session, account_id):
        calls.append(account_id)
        return None

    monkeypatch.setattr(crud, "get_profile", _missing)
    profile, is_default = activation.load_profile(session=db, account_id=account.id)
    assert is_default is True
    assert profile.is_profile_completed is False
    assert profile.is_paid is False
    assert len(calls) == 3


def test_default_profile_does_not_consume_pending_plan(db, stripe_fake, monkeypatch):
    account = _account(db)
    crud.record_pending_plan(session=db, account_id=account.id, plan=SubscriptionPlan.monthly)
    monkeypatch.setattr(crud, "get_profile", lambda *, session, account_id: None)

    result = activation.complete_authentication(
        session=db, stripe_service=stripe_fake, account=account
    )
    assert result.profile_is_default is True
    assert result.checkout is None
    assert result.destination == Destination.complete_profile
    assert stripe_fake.created_sessions == []

    monkeypatch.undo()
    db.expire_all()
    assert db.get(Profile, account.id).pending_subscription_plan == "monthly"


def test_pending_plan_consumed_once_across_sessions(engine, db, stripe_fake):
    account = _account(db)
    crud.record_pending_plan(session=db, account_id=account.id, plan=SubscriptionPlan.annual)

    with Session(engine) as first, Session(engine) as second:
        # 两个会话都已经读到了带计划的资料
        assert first.get(Profile, account.id).pending_subscription_plan == "annual"
        assert second.get(Profile, account.id).pending_subscription_plan == "annual"

        first_result = activation.complete_authentication(
            session=first, stripe_service=stripe_fake, account=first.merge(account)
        )
        second_result = activation.complete_authentication(
            session=second, stripe_service=stripe_fake, account=second.merge(account)
        )

    assert first_result.destination == Destination.checkout
    assert first_result.checkout.plan == SubscriptionPlan.annual
    assert second_result.checkout is None
    assert second_result.destination == Destination.complete_profile
    assert len(stripe_fake.created_sessions) == 1


def test_stale_reader_does_not_consume_re_recorded_plan(engine, db):
    account = _account(db)
    crud.record_pending_plan(session=db, account_id=account.id, plan=SubscriptionPlan.monthly)

    with Session(engine) as stale, Session(engine) as fresh:
        assert stale.get(Profile, account.id).pending_subscription_plan == "monthly"

        # 另一个请求消费后，又以相同计划重新记录了一次
        assert crud.consume_pending_plan(session=fresh, account_id=account.id) == "monthly"
        fresh.exec(
            update(Profile)
            .where(Profile.account_id == account.id)
            .values(
                pending_subscription_plan="monthly",
                pending_plan_set_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
            )
        )
        fresh.commit()

        assert crud.consume_pending_plan(session=stale, account_id=account.id) is None
        fresh.expire_all()
        assert crud.consume_pending_plan(session=fresh, account_id=account.id) == "monthly"


def test_checkout_failure_still_clears_plan_and_reports(client, db, stripe_fake):
    stripe_fake.fail_checkout = True
    data = signup(client, "unlucky@example.com", plan="monthly")
    activation_data = data["activation"]
    assert activation_data["checkout"] is None
    assert activation_data["checkout_error"] == "Upstream service unavailable, please retry"
    assert activation_data["destination"] == "complete_profile"

    db.expire_all()
    assert db.get(Profile, data["account"]["id"]).pending_subscription_plan is None

    # 恢复后不会重放已消费的计划
    stripe_fake.fail_checkout = False
    r = client.get("/api/v1/auth/session", headers=auth_headers(data))
    assert r.json()["data"]["activation"]["checkout"] is None
    assert stripe_fake.created_sessions == []


def test_paid_member_lands_on_profile(db, stripe_fake):
    account = _account(db)
    _complete(db, account.id, is_paid=True)
    db.add(
        Subscription(
            account_id=account.id,
            stripe_subscription_id="sub_paid",
            status=SubscriptionStatus.active.value,
        )
    )
    db.commit()

    result = activation.complete_authentication(
        session=db, stripe_service=stripe_fake, account=account
    )
    assert result.state.is_paid is True
    assert result.state.profile_stage == ProfileStage.complete
    assert result.destination == Destination.profile


def test_paid_member_pending_plan_is_consumed_without_checkout(db, stripe_fake):
    account = _account(db)
    _complete(db, account.id, is_paid=True)
    db.add(
        Subscription(
            account_id=account.id,
            stripe_subscription_id="sub_trial",
            status=SubscriptionStatus.trialing.value,
        )
    )
    db.commit()
    crud.record_pending_plan(session=db, account_id=account.id, plan=SubscriptionPlan.annual)

    result = activation.complete_authentication(
        session=db, stripe_service=stripe_fake, account=account
    )
    assert result.checkout is None
    assert result.checkout_error == "Account already has an active subscription"
    assert result.destination == Destination.profile
    assert stripe_fake.created_sessions == []

    db.expire_all()
    assert db.get(Profile, account.id).pending_subscription_plan is None


def test_past_due_member_lands_on_billing(db, stripe_fake):
    account = _account(db)
    _complete(db, account.id, is_paid=True)
    db.add(
        Subscription(
            account_id=account.id,
            stripe_subscription_id="sub_late",
            status=SubscriptionStatus.past_due.value,
        )
    )
    db.commit()

    result = activation.complete_authentication(
        session=db, stripe_service=stripe_fake, account=account
    )
    assert result.state.payment_stage == PaymentStage.past_due
    assert result.destination == Destination.billing


def test_admin_role_comes_from_admin_table(db, stripe_fake):
    account = _account(db)
    result = activation.complete_authentication(
        session=db, stripe_service=stripe_fake, account=account
    )
    assert result.state.role == Role.user

    db.add(AdminRole(account_id=account.id))
    db.commit()
    result = activation.complete_authentication(
        session=db, stripe_service=stripe_fake, account=account
    )
    assert result.state.role == Role.admin
    assert result.destination == Destination.admin_dashboard
