"""
Tests for the checkout redirect verification state machine.
"""
import threading

import pytest

from theralink.core.exceptions import TransientProviderError
from theralink.services.reconciliation_service import NOT_SUBSCRIBED, ReconcileResult
from theralink.services.redirect_verification import CheckoutVerifier, VerificationState

SUBSCRIBED = ReconcileResult(subscribed=True, plan="therapist_growth", product_id="prod_growth")


class ScriptedReconcile:
    """Returns (or raises) the scripted outcomes in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_verifier(reconcile, session_token="cs_test_123", sleep=None):
    sleeps = []
    verifier = CheckoutVerifier(
        reconcile,
        session_token,
        settle_delay=2,
        retry_delay=2,
        max_attempts=3,
        sleep=sleep or sleeps.append,
    )
    return verifier, sleeps


def test_missing_session_token_fails_immediately():
    reconcile = ScriptedReconcile(SUBSCRIBED)
    verifier, sleeps = make_verifier(reconcile, session_token=None)

    assert verifier.run() == VerificationState.ERROR
    assert reconcile.calls == 0
    assert sleeps == []


def test_three_failures_end_in_error():
    reconcile = ScriptedReconcile(TransientProviderError("down"))
    verifier, sleeps = make_verifier(reconcile)

    assert verifier.run() == VerificationState.ERROR
    assert reconcile.calls == 3
    assert verifier.attempts == 3
    assert sleeps == [2, 2, 4]
    assert isinstance(verifier.last_error, TransientProviderError)


def test_success_on_second_attempt():
    reconcile = ScriptedReconcile(TransientProviderError("down"), SUBSCRIBED)
    verifier, sleeps = make_verifier(reconcile)

    assert verifier.run() == VerificationState.SUCCESS
    assert reconcile.calls == 2
    assert sleeps == [2, 2]
    assert verifier.result == SUBSCRIBED


def test_not_yet_subscribed_counts_as_failure():
    reconcile = ScriptedReconcile(NOT_SUBSCRIBED)
    verifier, _ = make_verifier(reconcile)

    assert verifier.run() == VerificationState.ERROR
    assert reconcile.calls == 3
    assert verifier.result == NOT_SUBSCRIBED


def test_retry_resets_attempts():
    reconcile = ScriptedReconcile(NOT_SUBSCRIBED, NOT_SUBSCRIBED, NOT_SUBSCRIBED, SUBSCRIBED)
    verifier, _ = make_verifier(reconcile)
    assert verifier.run() == VerificationState.ERROR

    assert verifier.retry() == VerificationState.SUCCESS
    assert verifier.attempts == 1
    assert reconcile.calls == 4


def test_retry_only_from_error():
    verifier, _ = make_verifier(ScriptedReconcile(SUBSCRIBED))
    verifier.run()

    with pytest.raises(RuntimeError):
        verifier.retry()


def test_cancel_stops_between_attempts():
    reconcile = ScriptedReconcile(TransientProviderError("down"))
    holder = {}

    def sleep(seconds):
        # Navigate away during the first retry wait
        if holder["verifier"].attempts == 1:
            holder["verifier"].cancel()

    verifier, _ = make_verifier(reconcile, sleep=sleep)
    holder["verifier"] = verifier

    state = verifier.run()

    assert state == VerificationState.VERIFYING
    assert verifier.cancelled is True
    assert reconcile.calls == 1


def test_cancel_interrupts_default_sleep():
    reconcile = ScriptedReconcile(SUBSCRIBED)
    verifier = CheckoutVerifier(reconcile, "cs_test_123", settle_delay=30)

    worker = threading.Thread(target=verifier.run)
    worker.start()
    verifier.cancel()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert verifier.state == VerificationState.VERIFYING
    assert reconcile.calls == 0


def test_retry_after_cancel_resumes_verification():
    reconcile = ScriptedReconcile(TransientProviderError("down"), SUBSCRIBED)
    holder = {}

    def sleep(seconds):
        if holder["verifier"].attempts == 1 and reconcile.calls == 1:
            holder["verifier"].cancel()

    verifier, _ = make_verifier(reconcile, sleep=sleep)
    holder["verifier"] = verifier
    assert verifier.run() == VerificationState.VERIFYING

    assert verifier.retry() == VerificationState.SUCCESS
    assert verifier.cancelled is False
    assert verifier.attempts == 1
    assert reconcile.calls == 2


def test_retry_refused_before_first_run():
    verifier, _ = make_verifier(ScriptedReconcile(SUBSCRIBED))

    with pytest.raises(RuntimeError):
        verifier.retry()
