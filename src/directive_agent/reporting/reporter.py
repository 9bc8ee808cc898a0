"""HTTP client for the status aggregator."""

from __future__ import annotations

import json
import logging
from typing import Optional

import requests

from ..errors import AggregatorError, TransportError
from .messages import NetworkRequest, NetworkRequestType, NetworkResponse, Status

logger = logging.getLogger(__name__)


class StatusReporter:
    """Sends requests to the aggregator and decodes its responses.

    Transport problems (no endpoint, connection refused, timeouts, garbage
    responses) raise TransportError. A well-formed response whose status is
    not OK raises AggregatorError, which carries the decoded response.
    """

    def __init__(
        self,
        endpoint: Optional[str],
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def query(self, request_type: NetworkRequestType, data: Optional[str] = None) -> NetworkResponse:
        if not self.endpoint:
            raise TransportError("no aggregator endpoint configured")

        request = NetworkRequest(request_type=request_type, data=data)
        try:
            response = self.session.post(self.endpoint, json=request.to_dict(), timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"aggregator unreachable: {exc}", path=self.endpoint) from exc

        try:
            decoded = NetworkResponse.from_dict(response.json())
        except ValueError as exc:
            raise TransportError(
                f"aggregator returned HTTP {response.status_code} without a valid response body",
                path=self.endpoint,
            ) from exc

        if response.status_code >= 400 or not decoded.ok:
            raise AggregatorError(
                f"aggregator rejected {request_type.value}: {decoded.status}",
                response=decoded,
            )
        return decoded

    def report(self, status: Status) -> NetworkResponse:
        return self.query(NetworkRequestType.QUERYSTATUS, json.dumps(status.to_dict()))

    def safe_report(self, status: Status) -> bool:
        """Report `status`, logging instead of raising when delivery fails."""
        if not self.endpoint:
            logger.debug("No aggregator configured, status %s kept local", status.app_status.value)
            return False
        try:
            self.report(status)
        except TransportError as exc:
            logger.error(
                "Could not deliver %s status to the aggregator: %s", status.app_status.value, exc
            )
            return False
        return True
