from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
import stripe

from conftest import WEBHOOK_SECRET, sign_payload
from pullupclub.api.errors import UpstreamError, ValidationError
from pullupclub.core.config import settings
from pullupclub.enums import CheckoutMode, SubscriptionPlan
from pullupclub.services import stripe_service as stripe_module
from pullupclub.services.stripe_service import StripeService, parse_timestamp


@pytest.fixture()
def service() -> StripeService:
    return StripeService(api_key="sk_test_123", webhook_secret=WEBHOOK_SECRET)


@pytest.fixture()
def captured(monkeypatch) -> list[dict]:
    calls: list[dict] = []

    def _create(**params):
        calls.append(params)
        return {
            "id": "cs_live_1",
            "url": "https://checkout.stripe.com/c/pay/cs_live_1",
            "client_secret": "cs_live_1_secret" if params.get("ui_mode") == "embedded" else None,
        }

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)
    return calls


def test_hosted_checkout_params(service, captured):
    result = service.create_checkout_session(
        plan=SubscriptionPlan.monthly, account_id=42, email="a@example.com"
    )
    assert result["id"] == "cs_live_1"
    assert result["url"].startswith("https://checkout.stripe.com/")

    params = captured[0]
    assert params["api_key"] == "sk_test_123"
    assert params["mode"] == "subscription"
    assert params["line_items"] == [{"price": settings.STRIPE_PRICE_MONTHLY, "quantity": 1}]
    assert params["metadata"] == {"user_id": "42", "plan": "monthly"}
    assert params["subscription_data"]["metadata"]["user_id"] == "42"
    assert params["client_reference_id"] == "42"
    assert params["customer_email"] == "a@example.com"
    assert "customer" not in params
    assert params["success_url"].startswith(settings.FRONTEND_HOST)
    assert "{CHECKOUT_SESSION_ID}" in params["success_url"]
    assert "ui_mode" not in params


def test_embedded_checkout_reuses_customer(service, captured):
    result = service.create_checkout_session(
        plan="annual",
        account_id=7,
        email="b@example.com",
        customer_id="cus_existing",
        mode=CheckoutMode.embedded,
    )
    assert result["client_secret"] == "cs_live_1_secret"

    params = captured[0]
    assert params["customer"] == "cus_existing"
    assert "customer_email" not in params
    assert params["ui_mode"] == "embedded"
    assert "{CHECKOUT_SESSION_ID}" in params["return_url"]
    assert "success_url" not in params
    assert params["line_items"][0]["price"] == settings.STRIPE_PRICE_ANNUAL


def test_stripe_errors_become_upstream_errors(service, monkeypatch):
    def _fail(*args, **kwargs):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.checkout.Session, "create", _fail)
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", _fail)
    monkeypatch.setattr(stripe.Subscription, "retrieve", _fail)

    with pytest.raises(UpstreamError) as exc:
        service.create_checkout_session(plan="monthly", account_id=1, email="c@example.com")
    assert exc.value.operation == "create_checkout_session"
    assert exc.value.status_code == 502

    with pytest.raises(UpstreamError):
        service.retrieve_checkout_session("cs_1")
    with pytest.raises(UpstreamError) as exc:
        service.retrieve_subscription("sub_1")
    assert str(exc.value) == "stripe.retrieve_subscription failed"


def test_construct_event_verifies_signature(service):
    payload = json.dumps({"id": "evt_1", "type": "invoice.paid"}).encode()
    event = service.construct_event(payload, sign_payload(payload))
    assert event["id"] == "evt_1"

    with pytest.raises(ValidationError) as exc:
        service.construct_event(payload, None)
    assert exc.value.code == 400201

    with pytest.raises(ValidationError) as exc:
        service.construct_event(payload, sign_payload(payload, secret="whsec_wrong"))
    assert exc.value.code == 400202

    tampered = payload.replace(b"evt_1", b"evt_2")
    with pytest.raises(ValidationError) as exc:
        service.construct_event(tampered, sign_payload(payload))
    assert exc.value.code == 400202


@pytest.mark.parametrize("payload", [b"not json", b"[1, 2, 3]", b"\xff\xfe{"])
def test_construct_event_rejects_bad_payload(service, payload):
    with pytest.raises(ValidationError) as exc:
        service.construct_event(payload, sign_payload(payload))
    assert exc.value.code == 400203


def test_construct_event_without_secret_skips_verification_locally(monkeypatch):
    monkeypatch.setattr(settings, "ENVIRONMENT", "local")
    service = StripeService(api_key=None, webhook_secret=None)
    event = service.construct_event(b'{"id": "evt_x", "type": "ping"}', None)
    assert event["type"] == "ping"


@pytest.mark.parametrize("environment", ["staging", "production"])
def test_construct_event_without_secret_rejected_when_deployed(monkeypatch, environment):
    monkeypatch.setattr(settings, "ENVIRONMENT", environment)
    service = StripeService(api_key=None, webhook_secret=None)
    with pytest.raises(ValidationError) as exc:
        service.construct_event(b'{"id": "evt_x", "type": "ping"}', None)
    assert exc.value.code == 400205


def test_subscription_fields_prefers_top_level_period(service):
    fields = service.subscription_fields(
        {
            "id": "sub_1",
            "status": "active",
            "customer": "cus_1",
            "current_period_start": 1704067200,
            "current_period_end": 1706745600,
            "items": {"data": [{"price": {"id": settings.STRIPE_PRICE_ANNUAL}}]},
        }
    )
    assert fields["status"] == "active"
    assert fields["customer"] == "cus_1"
    assert fields["plan"] == SubscriptionPlan.annual
    assert fields["current_period_start"] == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert fields["current_period_end"] == datetime(2024, 2, 1, tzinfo=timezone.utc)


def test_subscription_fields_reads_item_period_and_metadata_plan(service):
    fields = service.subscription_fields(
        {
            "id": "sub_2",
            "status": "past_due",
            "metadata": {"plan": "monthly"},
            "items": {
                "data": [
                    {
                        "price": {"id": "price_unknown"},
                        "current_period_start": 1704067200,
                        "current_period_end": 1706745600,
                    }
                ]
            },
        }
    )
    assert fields["plan"] == SubscriptionPlan.monthly
    assert fields["current_period_end"] == datetime(2024, 2, 1, tzinfo=timezone.utc)

    fields = service.subscription_fields({"id": "sub_3", "status": "active"})
    assert fields["plan"] is None
    assert fields["current_period_start"] is None


def test_plan_price_mapping(service):
    assert service.price_for_plan("monthly") == settings.STRIPE_PRICE_MONTHLY
    assert service.plan_for_price(settings.STRIPE_PRICE_ANNUAL) == SubscriptionPlan.annual
    assert service.plan_for_price("price_other") is None
    assert service.plan_for_price(None) is None


def test_parse_timestamp():
    assert parse_timestamp(None) is None
    assert parse_timestamp("garbage") is None
    assert parse_timestamp("1704067200") == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_global_service_uses_settings(monkeypatch):
    monkeypatch.setattr(stripe_module, "_stripe_service", None)
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_settings")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", "whsec_settings")

    service = stripe_module.get_stripe_service()
    assert service.api_key == "sk_test_settings"
    assert service.webhook_secret == "whsec_settings"
    assert stripe_module.get_stripe_service() is service
