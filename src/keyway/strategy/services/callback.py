"""Authorization callback validation.

Decides whether a callback may proceed to the token exchange:

    START -> ERROR_REPORTED                 (provider sent ``error``)
    START -> STATE_CHECKED -> STATE_MISMATCH (absent or unequal state)
                           -> MISSING_CODE   (state matched, no ``code``)
                           -> STATE_OK       (proceed to exchange)

There is no path that skips the state comparison.
"""

from __future__ import annotations

import logging
import secrets
from enum import Enum

from keyway.strategy.models.callback import CallbackData, CallbackFailure
from keyway.strategy.models.errors import CallbackError, FailureCode
from keyway.strategy.services.session import SessionState

logger = logging.getLogger(__name__)


class CallbackOutcome(str, Enum):
    ERROR_REPORTED = "error_reported"
    STATE_MISMATCH = "state_mismatch"
    MISSING_CODE = "missing_code"
    STATE_OK = "state_ok"


class CallbackValidator:
    """Validates callback data against the state stored in the session."""

    def validate(
        self, data: CallbackData, session_state: SessionState
    ) -> CallbackFailure | None:
        """Check the callback for provider errors and CSRF.

        The stored state is consumed whatever the outcome.

        Args:
            data: Resolved callback parameters
            session_state: Session slot holding the issued state

        Returns:
            None when the exchange may proceed, otherwise the failure
        """
        outcome, failure = self.classify(data, session_state)
        logger.debug(f"Authorization callback outcome: {outcome.value}")
        return failure

    def classify(
        self, data: CallbackData, session_state: SessionState
    ) -> tuple[CallbackOutcome, CallbackFailure | None]:
        expected_state = session_state.consume()

        if data.has_error():
            reason = data.error_reason or data.error_description
            error = CallbackError(data.error, reason, data.error_uri)
            logger.warning(f"Authorization callback contained error: {error.message}")
            return CallbackOutcome.ERROR_REPORTED, CallbackFailure(
                code=reason or data.error, detail=error
            )

        if not self._states_match(expected_state, data.state):
            logger.warning("Authorization callback state mismatch - possible CSRF")
            return CallbackOutcome.STATE_MISMATCH, CallbackFailure.csrf_detected()

        if not data.code:
            logger.warning("Authorization callback missing authorization code")
            return CallbackOutcome.MISSING_CODE, CallbackFailure(
                code=FailureCode.MISSING_CODE.value,
                detail=CallbackError(
                    FailureCode.MISSING_CODE, "Missing authorization code"
                ),
            )

        return CallbackOutcome.STATE_OK, None

    @staticmethod
    def _states_match(expected: str | None, actual: str | None) -> bool:
        if not expected or not actual:
            return False
        return secrets.compare_digest(expected.encode(), actual.encode())
