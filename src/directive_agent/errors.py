"""Error kinds raised while applying directives."""

from __future__ import annotations

from typing import Any, Optional


class DirectiveError(RuntimeError):
    """Base class for failures scoped to a single directive or cycle."""

    kind = "DirectiveError"

    def __init__(self, message: str, *, path: Optional[Any] = None) -> None:
        self.path = path
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        if self.path is not None:
            return f"{message} ({self.path})"
        return message


class ParseError(DirectiveError):
    """Raised when a manifest cannot be decoded into a directive."""

    kind = "ParseError"


class IntegrityError(DirectiveError):
    """Raised when validation fails, a rollback happens, or a marker copy is empty."""

    kind = "IntegrityError"


class ScanError(DirectiveError):
    """Raised when the webroot cannot be enumerated. Fatal to the cycle."""

    kind = "ScanError"


class DependencyError(DirectiveError):
    """Raised when installing application dependencies or runtimes fails."""

    kind = "DependencyError"


class ServiceError(DirectiveError):
    """Raised when writing, reloading or enabling a service unit fails."""

    kind = "ServiceError"


class TransportError(DirectiveError):
    """Raised when the status aggregator cannot be reached."""

    kind = "TransportError"


class AggregatorError(TransportError):
    """Raised when the aggregator answers with a structured error."""

    kind = "AggregatorError"

    def __init__(self, message: str, *, response: Any = None) -> None:
        self.response = response
        super().__init__(message)


class AgentLockedError(RuntimeError):
    """Raised when another agent instance already holds the cycle lock."""

    pass
