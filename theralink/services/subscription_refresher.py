"""
Periodic subscription refresh for long-lived client sessions.

Catches drift between billing cycles (missed or delayed webhooks) by calling
reconciliation on a fixed interval.
"""
import logging
import threading
from typing import Callable, Optional

from theralink.core.config import RECONCILE_INTERVAL_SECONDS
from theralink.core.exceptions import BillingSyncError
from theralink.services.reconciliation_service import ReconcileResult

logger = logging.getLogger(__name__)


class SubscriptionRefresher:

    def __init__(
        self,
        reconcile: Callable[[], ReconcileResult],
        interval: float = RECONCILE_INTERVAL_SECONDS,
        on_result: Optional[Callable[[ReconcileResult], None]] = None
    ):
        self._reconcile = reconcile
        self.interval = interval
        self._on_result = on_result
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.latest: Optional[ReconcileResult] = None

    def refresh_once(self) -> Optional[ReconcileResult]:
        """One reconciliation round. Failures keep the previous result."""
        try:
            result = self._reconcile()
        except BillingSyncError as e:
            logger.warning(f"Periodic subscription refresh failed: {e}")
            return None

        self.latest = result
        if self._on_result:
            self._on_result(result)
        return result

    def _refresh_in_background(self) -> None:
        try:
            self.refresh_once()
        except Exception as e:
            # One bad round (or a failing on_result callback) must not end the loop
            logger.error(f"Periodic subscription refresh crashed: {e}", exc_info=True)

    def _run(self) -> None:
        self._refresh_in_background()
        while not self._stop.wait(self.interval):
            self._refresh_in_background()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="subscription-refresher", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
