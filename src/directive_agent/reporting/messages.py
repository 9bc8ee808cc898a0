"""Wire messages exchanged with the status aggregator."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .. import __version__

OK_STATUSES = {"ok", "success"}


class NetworkRequestType(Enum):
    """Request kinds understood by the aggregator."""
    QUERYSYSTEM = "QUERYSYSTEM"
    QUERYSTATUS = "QUERYSTATUS"
    QUERYGITREPO = "QUERYGITREPO"
    UPDATEGITREPO = "UPDATEGITREPO"


@dataclass(frozen=True)
class NetworkRequest:
    request_type: NetworkRequestType
    data: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"request_type": self.request_type.value, "data": self.data}


@dataclass(frozen=True)
class NetworkResponse:
    status: str
    data: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status.strip().lower() in OK_STATUSES

    @classmethod
    def from_dict(cls, payload: Any) -> "NetworkResponse":
        if not isinstance(payload, dict) or not isinstance(payload.get("status"), str):
            raise ValueError("response must be an object with a string 'status'")
        data = payload.get("data")
        if data is not None and not isinstance(data, str):
            # Some aggregators send the payload inline instead of as text
            data = json.dumps(data)
        return cls(status=payload["status"], data=data)

    def parsed_data(self) -> Any:
        """The data payload decoded from JSON, or the raw text when it is not JSON."""
        if self.data is None:
            return None
        try:
            return json.loads(self.data)
        except json.JSONDecodeError:
            return self.data

    def __str__(self) -> str:
        lines = [f"Status: {self.status}"]
        parsed = self.parsed_data()
        if parsed is None:
            lines.append("Data: None")
        elif isinstance(parsed, str):
            lines.append(f"Data: {parsed}")
        else:
            lines.append(f"Data: {json.dumps(parsed, indent=2)}")
        return "\n".join(lines) + "\n"


class AppStatus(Enum):
    RUNNING = "Running"
    WARNING = "Warning"


@dataclass(frozen=True)
class Status:
    """One health report. Built fresh for every event."""

    app_name: str
    app_status: AppStatus
    timestamp: int
    version: str = __version__
    detail: Optional[str] = None

    @classmethod
    def now(cls, app_status: AppStatus, detail: Optional[str] = None, *, app_name: str = "directive") -> "Status":
        return cls(
            app_name=app_name,
            app_status=app_status,
            timestamp=int(time.time()),
            detail=detail,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "app_name": self.app_name,
            "app_status": self.app_status.value,
            "timestamp": self.timestamp,
            "version": self.version,
            "detail": self.detail,
        }
