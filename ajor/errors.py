"""Error taxonomy for the cooperative client.

Every error may carry the name of the protocol action that produced it
(``fund_cooperative``, ``increase_allowance``, ...). Chain clients raise
without an action; the orchestrator attaches it before re-raising.
"""
from __future__ import annotations


class AjorError(Exception):
    """Base class for all client errors."""

    retryable = False

    def __init__(self, message: str, action: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.action = action

    def __str__(self) -> str:
        if self.action:
            return f"{self.action}: {self.message}"
        return self.message


# ---------------------------------------------------------------------------
# Local failures, never sent to the chain
# ---------------------------------------------------------------------------


class PreconditionError(AjorError):
    """A local precondition does not hold (no account, stale proposal...)."""


class NotConnectedError(PreconditionError):
    """No account is bound to the session."""

    def __init__(self, action: str | None = None) -> None:
        super().__init__("no account bound to the session", action=action)


class ProposalStateError(PreconditionError):
    """The proposal is not in a state that allows the requested step."""


class ValidationError(AjorError, ValueError):
    """Input rejected before any message was built."""


class InvalidEntityError(ValidationError):
    """An entity failed structural validation."""

    def __init__(self, reason: str, action: str | None = None) -> None:
        super().__init__(reason, action=action)
        self.reason = reason


class MalformedMessageError(ValidationError):
    """A wire message or response does not have the expected shape."""


# ---------------------------------------------------------------------------
# Remote failures
# ---------------------------------------------------------------------------


class TransportError(AjorError):
    """Network or node failure; the same message may be resent by the caller."""

    retryable = True


class RemoteRejectionError(AjorError):
    """The contract or chain rejected the call (insufficient collateral,
    proposal already executed, unauthorized...). Passed through verbatim."""

    def __init__(
        self, message: str, code: int | None = None, action: str | None = None
    ) -> None:
        super().__init__(message, action=action)
        self.code = code
