"""Local host capabilities: command execution, telemetry and the secret codec."""

from .codec import ExternalSecretCodec
from .probe import LocalProbe, SystemStats, machine_id
from .session import LocalCommandResult, LocalSession

__all__ = [
    "ExternalSecretCodec",
    "LocalCommandResult",
    "LocalProbe",
    "LocalSession",
    "SystemStats",
    "machine_id",
]
