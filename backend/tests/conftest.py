from __future__ import annotations

import hashlib
import hmac
import json
import time
from collections.abc import Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, delete

from pullupclub.api.deps import get_db
from pullupclub.api.errors import UpstreamError
from pullupclub.core.config import settings
from pullupclub.enums import CheckoutMode, SubscriptionPlan
from pullupclub.main import app
from pullupclub.models import (
    Account,
    AdminRole,
    Profile,
    StripeEvent,
    Submission,
    Subscription,
)
from pullupclub.services.stripe_service import StripeService, get_stripe_service

WEBHOOK_SECRET = "whsec_test_secret"


class FakeStripeService(StripeService):
    """
    不访问网络的 Stripe 服务

    结账会话和订阅对象保存在内存里；验签仍走真实的 construct_event。
    """

    def __init__(self) -> None:
        super().__init__(api_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET)
        self.created_sessions: list[dict[str, Any]] = []
        self.checkout_sessions: dict[str, dict[str, Any]] = {}
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.fail_checkout = False

    def create_checkout_session(
        self,
        *,
        plan: SubscriptionPlan,
        account_id: int,
        email: str,
        customer_id: str | None = None,
        mode: CheckoutMode = CheckoutMode.hosted,
    ) -> dict[str, Any]:
        if self.fail_checkout:
            raise UpstreamError(collaborator="stripe", operation="create_checkout_session")
        plan = SubscriptionPlan(plan)
        session_id = f"cs_test_{len(self.created_sessions) + 1}"
        self.created_sessions.append(
            {
                "id": session_id,
                "plan": plan,
                "price": self.price_for_plan(plan),
                "account_id": account_id,
                "email": email,
                "customer_id": customer_id,
                "mode": CheckoutMode(mode),
            }
        )
        self.checkout_sessions[session_id] = {
            "id": session_id,
            "status": "open",
            "payment_status": "unpaid",
            "customer_email": email,
            "metadata": {"user_id": str(account_id), "plan": plan.value},
        }
        if mode == CheckoutMode.embedded:
            return {"id": session_id, "url": None, "client_secret": f"{session_id}_secret"}
        return {
            "id": session_id,
            "url": f"https://checkout.stripe.test/{session_id}",
            "client_secret": None,
        }

    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        if session_id not in self.checkout_sessions:
            raise UpstreamError(collaborator="stripe", operation="retrieve_checkout_session")
        return self.checkout_sessions[session_id]

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        if subscription_id not in self.subscriptions:
            raise UpstreamError(collaborator="stripe", operation="retrieve_subscription")
        return self.subscriptions[subscription_id]

    def add_subscription(
        self,
        subscription_id: str,
        *,
        customer: str,
        status: str = "active",
        plan: SubscriptionPlan = SubscriptionPlan.monthly,
        user_id: int | None = None,
    ) -> dict[str, Any]:
        now = int(time.time())
        sub = {
            "id": subscription_id,
            "object": "subscription",
            "customer": customer,
            "status": status,
            "metadata": {"user_id": str(user_id)} if user_id else {},
            "items": {
                "data": [
                    {
                        "price": {"id": self.price_for_plan(plan)},
                        "current_period_start": now,
                        "current_period_end": now + 30 * 24 * 3600,
                    }
                ]
            },
        }
        self.subscriptions[subscription_id] = sub
        return sub


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """按 Stripe 的规则生成 Stripe-Signature 头部"""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def post_webhook(client: TestClient, event: dict[str, Any]):
    payload = json.dumps(event).encode()
    return client.post(
        "/api/v1/subscription/webhook",
        content=payload,
        headers={"Stripe-Signature": sign_payload(payload), "Content-Type": "application/json"},
    )


def make_event(event_id: str, event_type: str, obj: dict[str, Any]) -> dict[str, Any]:
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}


def signup(client: TestClient, email: str, password: str = "password123", **extra: Any) -> dict:
    r = client.post("/api/v1/auth/signup", json={"email": email, "password": password, **extra})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["code"] == 0
    return body["data"]


def auth_headers(data: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {data['access_token']}"}


def complete_profile(client: TestClient, headers: dict[str, str], gender: str = "Male") -> dict:
    r = client.put(
        "/api/v1/user/profile",
        headers=headers,
        json={"full_name": "Test Athlete", "age": 30, "gender": gender, "region": "West"},
    )
    assert r.status_code == 200, r.text
    return r.json()["data"]


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(autouse=True)
def _fast_profile_retry(monkeypatch):
    monkeypatch.setattr(settings, "PROFILE_FETCH_BACKOFF_SECONDS", 0)


@pytest.fixture(autouse=True)
def _clean_tables(engine) -> Generator[None, None, None]:
    yield
    with Session(engine) as session:
        # children first
        session.exec(delete(StripeEvent))
        session.exec(delete(Submission))
        session.exec(delete(Subscription))
        session.exec(delete(AdminRole))
        session.exec(delete(Profile))
        session.exec(delete(Account))
        session.commit()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def stripe_fake() -> FakeStripeService:
    return FakeStripeService()


@pytest.fixture(scope="function")
def client(engine, stripe_fake) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_stripe_service] = lambda: stripe_fake
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
