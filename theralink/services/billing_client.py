"""
HTTP client for the reconciliation endpoint.

Used from long-lived client sessions (checkout redirect verification and the
periodic refresh) to trigger POST /billing/check-subscription.
"""
import logging
from datetime import datetime
from typing import Optional
import httpx

from theralink.core.exceptions import AuthenticationError, TransientProviderError
from theralink.core.plan_catalog import PLAN_NONE
from theralink.services.reconciliation_service import ReconcileResult

logger = logging.getLogger(__name__)

CHECK_SUBSCRIPTION_PATH = "/billing/check-subscription"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    if not isinstance(value, str):
        raise ValueError(f"subscription_end is not a timestamp: {value!r}")
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class BillingApiClient:
    """Calls the reconciliation endpoint on behalf of a signed-in user."""

    def __init__(
        self,
        base_url: str = "",
        access_token: Optional[str] = None,
        http: Optional[httpx.Client] = None,
        timeout: float = 10.0
    ):
        self.access_token = access_token
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def check_subscription(self) -> ReconcileResult:
        """
        Ask the API to reconcile the caller's subscription.

        Raises:
            AuthenticationError: No token, or the API rejected it
            TransientProviderError: Network failure or a server-side error
        """
        if not self.access_token:
            raise AuthenticationError("No access token for subscription check")

        try:
            response = self._http.post(
                CHECK_SUBSCRIPTION_PATH,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Subscription check request failed: {e}")
            raise TransientProviderError(f"Subscription check request failed: {e}")

        if response.status_code == 401:
            raise AuthenticationError("Subscription check rejected: invalid token")
        if response.status_code >= 400:
            try:
                error = response.json().get("error")
            except (ValueError, AttributeError):
                error = response.text
            raise TransientProviderError(f"Subscription check failed: status={response.status_code}, error={error}")

        try:
            data = response.json()
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            return ReconcileResult(
                subscribed=bool(data.get("subscribed")),
                plan=data.get("plan") or PLAN_NONE,
                product_id=data.get("product_id"),
                subscription_end=_parse_timestamp(data.get("subscription_end")),
            )
        except ValueError as e:
            # Proxies and gateways can answer 200 with an HTML page
            logger.warning(f"Unreadable subscription check response: status={response.status_code}, error={e}")
            raise TransientProviderError(f"Unreadable subscription check response: {e}")

    def close(self) -> None:
        self._http.close()
