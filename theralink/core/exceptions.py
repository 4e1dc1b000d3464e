"""
Billing sync error taxonomy.

Provider SDK exceptions are translated into these at the adapter boundary,
so services and routes never need to import stripe to handle failures.
"""


class BillingSyncError(Exception):
    """Base exception for subscription and entitlement sync errors."""
    pass


class AuthenticationError(BillingSyncError):
    """Missing or invalid caller identity. No record is touched."""
    pass


class VerificationError(BillingSyncError):
    """Webhook signature or payload could not be verified."""
    pass


class UnmappedProductError(BillingSyncError):
    """A provider product id has no entry in the plan catalog."""

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"No plan mapped for product_id={product_id}")


class CustomerNotFoundError(BillingSyncError):
    """No provider customer exists for a user (treated as never subscribed)."""
    pass


class TransientProviderError(BillingSyncError):
    """Network or provider outage. Safe to retry."""
    pass
