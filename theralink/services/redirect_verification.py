"""
Checkout redirect verification.

After the user comes back from the Stripe-hosted checkout, wait for the
webhook to have a chance to land, then poll reconciliation until the
subscription shows up, with a bounded number of attempts.

    verifying --subscribed--> success
    verifying --attempts exhausted / no session token--> error
    error --retry()--> verifying
    verifying (cancelled) --retry()--> verifying
"""
import enum
import logging
import threading
from typing import Callable, Optional

from theralink.core.config import (
    CHECKOUT_SETTLE_DELAY_SECONDS,
    VERIFY_MAX_ATTEMPTS,
    VERIFY_RETRY_DELAY_SECONDS,
)
from theralink.core.exceptions import BillingSyncError
from theralink.services.reconciliation_service import ReconcileResult

logger = logging.getLogger(__name__)


class VerificationState(str, enum.Enum):
    VERIFYING = "verifying"
    SUCCESS = "success"
    ERROR = "error"


class CheckoutVerifier:
    """
    State machine for the checkout success page.

    A reconciliation call that raises, or that succeeds without an active
    subscription yet, counts as a failed attempt. The wait before attempt
    n+1 is retry_delay * n. cancel() (user navigated away) interrupts any
    pending wait and stops the machine where it is.
    """

    def __init__(
        self,
        reconcile: Callable[[], ReconcileResult],
        session_token: Optional[str],
        settle_delay: float = CHECKOUT_SETTLE_DELAY_SECONDS,
        retry_delay: float = VERIFY_RETRY_DELAY_SECONDS,
        max_attempts: int = VERIFY_MAX_ATTEMPTS,
        sleep: Optional[Callable[[float], None]] = None
    ):
        self._reconcile = reconcile
        self.session_token = session_token
        self.settle_delay = settle_delay
        self.retry_delay = retry_delay
        self.max_attempts = max_attempts
        self._cancelled = threading.Event()
        self._sleep = sleep or self._cancellable_sleep

        self.state = VerificationState.VERIFYING
        self.attempts = 0
        self.result: Optional[ReconcileResult] = None
        self.last_error: Optional[Exception] = None

    def _cancellable_sleep(self, seconds: float) -> None:
        self._cancelled.wait(seconds)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        logger.info(f"Checkout verification cancelled: state={self.state.value}, attempts={self.attempts}")
        self._cancelled.set()

    def run(self) -> VerificationState:
        """Run verification to a terminal state (or until cancelled)."""
        self.state = VerificationState.VERIFYING
        self.attempts = 0
        self.last_error = None

        if not self.session_token:
            # Malformed entry, not a timing issue: no point polling
            logger.warning("Checkout verification without a session token")
            self.state = VerificationState.ERROR
            return self.state

        self._sleep(self.settle_delay)

        while not self.cancelled:
            self.attempts += 1
            try:
                result = self._reconcile()
            except BillingSyncError as e:
                self.last_error = e
                logger.warning(f"Checkout verification attempt failed: attempt={self.attempts}, error={e}")
            else:
                self.result = result
                if result.subscribed:
                    logger.info(f"Checkout verified: attempt={self.attempts}, plan={result.plan}")
                    self.state = VerificationState.SUCCESS
                    return self.state
                logger.info(f"Subscription not active yet: attempt={self.attempts}")

            if self.attempts >= self.max_attempts:
                logger.warning(f"Checkout verification gave up: attempts={self.attempts}")
                self.state = VerificationState.ERROR
                return self.state

            self._sleep(self.retry_delay * self.attempts)

        return self.state

    def retry(self) -> VerificationState:
        """
        Manual retry: resets the attempt counter.

        Allowed from the error state, or after cancel() left the machine
        in verifying (the user came back to the page).
        """
        resumable = self.state == VerificationState.VERIFYING and self.cancelled
        if self.state != VerificationState.ERROR and not resumable:
            raise RuntimeError(f"Retry is only available from the error state or after cancel, not {self.state.value}")
        self._cancelled.clear()
        return self.run()
