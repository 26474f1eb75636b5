"""
Exception hierarchy for FlowPay.

All FlowPay-specific exceptions inherit from FlowPayError for easy catching.
"""

from __future__ import annotations

from typing import Any


class FlowPayError(Exception):
    """
    Base exception for all FlowPay errors.

    Catch this to handle any FlowPay-related exception.

    Example:
        >>> try:
        ...     await flow.resolve(intent)
        ... except FlowPayError as e:
        ...     print(f"FlowPay error: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(FlowPayError):
    """
    Configuration is missing or invalid.

    Raised when:
    - Configuration values fail validation
    - An unknown storage backend is requested
    """

    pass


class ValidationError(FlowPayError):
    """
    Input validation error.

    Raised when:
    - Required parameters are missing
    - An intent cannot be resolved (e.g. a receive intent, or a zero amount)
    - A plan or intent referenced by id does not exist
    """

    pass


class IntentStateError(FlowPayError):
    """An intent lifecycle transition is not allowed from its current status."""

    def __init__(
        self,
        message: str,
        intent_id: str,
        current_status: str,
        target_status: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.intent_id = intent_id
        self.current_status = current_status
        self.target_status = target_status

    def __str__(self) -> str:
        return f"{self.message} ({self.current_status} -> {self.target_status})"


class StorageError(FlowPayError):
    """
    Storage backend operation failed.

    Raised when:
    - A record cannot be written or read
    - The backend is unreachable
    """

    def __init__(
        self,
        message: str,
        collection: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.collection = collection


class PlanPersistenceError(StorageError):
    """
    A resolution plan could not be persisted.

    Unlike audit or analytics writes, this is fatal for the resolution
    attempt and is always surfaced to the caller.
    """

    def __init__(
        self,
        message: str,
        intent_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, collection="resolution_plans", details=details)
        self.intent_id = intent_id


class LockError(FlowPayError):
    """A per-user lock could not be acquired in time."""

    def __init__(self, message: str, user_id: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details)
        self.user_id = user_id


class ResolutionError(FlowPayError):
    """
    Base exception for resolution failures.

    Each subclass carries a machine-readable reason code. The resolution
    service converts these into a failed ResolveResult; callers only see the
    exception when they drive ResolutionEngine internals directly.
    """

    reason_code: str = "RESOLUTION_FAILED"

    def __init__(
        self,
        message: str,
        intent_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.intent_id = intent_id

    def __str__(self) -> str:
        return f"[{self.reason_code}] {self.message}"


class NoFundingSourceError(ResolutionError):
    """No linked and available funding source exists."""

    reason_code = "NO_FUNDING_SOURCE"


class InsufficientFundsError(ResolutionError):
    """Eligible sources cannot cover the requested amount."""

    reason_code = "INSUFFICIENT_FUNDS"


class CurrencyMismatchError(ResolutionError):
    """No eligible source is denominated in the intent's currency."""

    reason_code = "CURRENCY_MISMATCH"

    def __init__(
        self,
        message: str,
        currency: str,
        available_currencies: list[str],
        intent_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            intent_id=intent_id,
            details={"currency": currency, "available": available_currencies},
        )
        self.currency = currency
        self.available_currencies = available_currencies


class BlockedByGuardrailError(ResolutionError):
    """The guardrail policy blocked the candidate plan outright."""

    reason_code = "BLOCKED_BY_GUARDRAIL"

    def __init__(
        self,
        message: str,
        blocked_reason: str,
        intent_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, intent_id=intent_id, details=details)
        self.blocked_reason = blocked_reason


class HandoffError(FlowPayError):
    """Base exception for wallet handoff errors."""

    def __init__(self, message: str, rail: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details)
        self.rail = rail


class HandoffUnsupportedError(HandoffError):
    """The rail has neither a deep-link scheme nor a web fallback."""

    pass


class HandoffStateError(HandoffError):
    """A handoff action was requested from a state that does not allow it."""

    def __init__(self, message: str, state: str, rail: str | None = None) -> None:
        super().__init__(message, rail=rail)
        self.state = state

    def __str__(self) -> str:
        return f"{self.message} (state: {self.state})"
