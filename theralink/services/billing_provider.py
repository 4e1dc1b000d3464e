"""
Billing provider protocol.

The only provider calls the sync subsystem makes: webhook verification and
three read lookups. Ingestion and reconciliation depend on this protocol, not
on stripe, so tests can substitute an in-memory provider.
"""
from typing import Any, Mapping, Optional, Protocol


class BillingProvider(Protocol):

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Mapping[str, Any]:
        """
        Verify a webhook signature and parse the event.

        Raises:
            VerificationError: Missing/invalid signature or malformed payload
        """
        ...

    def get_customer_email(self, customer_id: str) -> Optional[str]:
        """
        Email on a provider customer, or None if the customer was deleted or
        has no email.

        Raises:
            TransientProviderError: Provider unreachable
        """
        ...

    def find_customer_id_by_email(self, email: str) -> Optional[str]:
        """
        First provider customer registered with this email, or None.

        Raises:
            TransientProviderError: Provider unreachable
        """
        ...

    def find_subscription(self, customer_id: str, status: str) -> Optional[Mapping[str, Any]]:
        """
        At most one subscription of the customer in the given status.

        Raises:
            TransientProviderError: Provider unreachable
        """
        ...
