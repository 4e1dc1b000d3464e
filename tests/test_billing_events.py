"""
Unit tests for parsing Stripe events into billing event variants.
"""
from datetime import datetime, timezone

from conftest import PERIOD_END, invoice_payload, stripe_event, subscription_payload
from theralink.services.billing_events import (
    BILLING_EVENT_TYPES,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    SubscriptionChanged,
    UnhandledEvent,
    parse_event,
)
from theralink.services.billing_service import EVENT_HANDLERS


def test_subscription_updated_is_parsed():
    event = parse_event(stripe_event(
        "customer.subscription.updated",
        subscription_payload("prod_A", status="trialing"),
        event_id="evt_1",
    ))

    assert isinstance(event, SubscriptionChanged)
    assert event.event_id == "evt_1"
    assert event.customer_id == "cus_123"
    assert event.subscription_id == "sub_123"
    assert event.provider_status == "trialing"
    assert event.product_id == "prod_A"
    assert event.current_period_end == datetime.fromtimestamp(PERIOD_END, tz=timezone.utc)
    assert event.deleted is False


def test_subscription_deleted_sets_flag():
    event = parse_event(stripe_event("customer.subscription.deleted", subscription_payload("prod_A")))

    assert isinstance(event, SubscriptionChanged)
    assert event.deleted is True


def test_expanded_customer_and_product_objects():
    payload = subscription_payload("ignored")
    payload["customer"] = {"id": "cus_expanded", "object": "customer"}
    payload["items"]["data"][0]["price"]["product"] = {"id": "prod_expanded", "object": "product"}

    event = parse_event(stripe_event("customer.subscription.created", payload))

    assert event.customer_id == "cus_expanded"
    assert event.product_id == "prod_expanded"


def test_period_end_read_from_subscription_item():
    payload = subscription_payload("prod_A", period_end=None)
    del payload["current_period_end"]
    payload["items"]["data"][0]["current_period_end"] = PERIOD_END

    event = parse_event(stripe_event("customer.subscription.updated", payload))

    assert event.current_period_end == datetime.fromtimestamp(PERIOD_END, tz=timezone.utc)


def test_invoice_events_are_parsed():
    failed = parse_event(stripe_event("invoice.payment_failed", invoice_payload()))
    succeeded = parse_event(stripe_event("invoice.payment_succeeded", invoice_payload()))

    assert isinstance(failed, InvoicePaymentFailed)
    assert failed.subscription_id == "sub_123"
    assert failed.customer_id == "cus_123"
    assert isinstance(succeeded, InvoicePaymentSucceeded)


def test_invoice_subscription_from_parent_details():
    invoice = invoice_payload(subscription_id=None)
    del invoice["subscription"]
    invoice["parent"] = {"subscription_details": {"subscription": "sub_from_parent"}}

    event = parse_event(stripe_event("invoice.payment_failed", invoice))

    assert event.subscription_id == "sub_from_parent"


def test_other_event_types_are_unhandled():
    event = parse_event(stripe_event("checkout.session.completed", {"id": "cs_123"}, event_id="evt_9"))

    assert event == UnhandledEvent(event_id="evt_9", event_type="checkout.session.completed")


def test_every_variant_has_a_handler():
    assert set(BILLING_EVENT_TYPES) == set(EVENT_HANDLERS)
