"""Status reporting to the remote aggregator."""

from .messages import AppStatus, NetworkRequest, NetworkRequestType, NetworkResponse, Status
from .reporter import StatusReporter

__all__ = [
    "AppStatus",
    "NetworkRequest",
    "NetworkRequestType",
    "NetworkResponse",
    "Status",
    "StatusReporter",
]
