"""
Stripe implementation of the billing provider, plus helpers for reading
Stripe subscription and invoice payloads.
"""
import logging
from typing import Any, Mapping, Optional
from datetime import datetime, timezone
import stripe
from theralink.core.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET
from theralink.core.exceptions import TransientProviderError, VerificationError

logger = logging.getLogger(__name__)


class StripeBillingProvider:
    """Stripe-backed BillingProvider."""

    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.secret_key = secret_key or STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or STRIPE_WEBHOOK_SECRET

        if self.secret_key:
            stripe.api_key = self.secret_key
        else:
            logger.warning("STRIPE_SECRET_KEY not configured - provider lookups will fail")

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Mapping[str, Any]:
        """
        Verify and parse Stripe webhook event.

        Raises:
            VerificationError: If webhook verification fails
        """
        if not self.webhook_secret:
            raise VerificationError("STRIPE_WEBHOOK_SECRET not configured")
        if not signature:
            raise VerificationError("Missing stripe-signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise VerificationError(f"Invalid webhook payload: {e}")
        except stripe.error.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise VerificationError(f"Invalid signature: {e}")

        logger.info(f"Verified webhook event: {event['type']}, id={event['id']}")
        return event

    def get_customer_email(self, customer_id: str) -> Optional[str]:
        try:
            customer = stripe.Customer.retrieve(customer_id)
        except stripe.error.InvalidRequestError as e:
            logger.warning(f"Stripe customer lookup rejected: customer_id={customer_id}, error={e}")
            return None
        except stripe.error.StripeError as e:
            raise TransientProviderError(f"Stripe customer lookup failed: {e}")

        if customer.get("deleted"):
            return None
        return customer.get("email") or None

    def find_customer_id_by_email(self, email: str) -> Optional[str]:
        try:
            customers = stripe.Customer.list(email=email, limit=1)
        except stripe.error.StripeError as e:
            raise TransientProviderError(f"Stripe customer search failed: {e}")

        if not customers.data:
            return None
        return customers.data[0].id

    def find_subscription(self, customer_id: str, status: str) -> Optional[Mapping[str, Any]]:
        try:
            subscriptions = stripe.Subscription.list(customer=customer_id, status=status, limit=1)
        except stripe.error.StripeError as e:
            raise TransientProviderError(f"Stripe subscription search failed: {e}")

        if not subscriptions.data:
            return None
        return subscriptions.data[0]


def _first_item(subscription: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    items = subscription.get("items") or {}
    data = items.get("data") or []
    return data[0] if data else None


def get_subscription_product_id(subscription: Mapping[str, Any]) -> Optional[str]:
    """Product of the subscription's first item (users hold one plan at a time)."""
    item = _first_item(subscription)
    if not item:
        return None
    price = item.get("price") or {}
    product = price.get("product")
    if product is None or isinstance(product, str):
        return product
    # Expanded product object
    return product.get("id")


def get_subscription_period_end(subscription: Mapping[str, Any]) -> Optional[datetime]:
    """
    Current period end as an aware UTC datetime.

    Newer Stripe API versions report the period on the subscription item
    instead of the subscription.
    """
    timestamp = subscription.get("current_period_end")
    if timestamp is None:
        item = _first_item(subscription)
        timestamp = item.get("current_period_end") if item else None
    if not isinstance(timestamp, (int, float)):
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def get_invoice_subscription_id(invoice: Mapping[str, Any]) -> Optional[str]:
    """Subscription an invoice belongs to, or None for one-off invoices."""
    subscription = invoice.get("subscription")
    if subscription is None:
        parent = invoice.get("parent") or {}
        details = parent.get("subscription_details") or {}
        subscription = details.get("subscription")
    if subscription is None or isinstance(subscription, str):
        return subscription
    return subscription.get("id")
