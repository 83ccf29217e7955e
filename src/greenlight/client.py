"""HTTP client for the Greenlight relay server.

Wraps the three relay endpoints:
    POST /request         - permission request, blocks until a human decides
    POST /session/enroll  - enroll a relay_id for a device
    POST /transcript      - one transcript record, fire-and-forget
"""

import logging
from typing import Any

import httpx

from greenlight.config import DEFAULT_SERVER

logger = logging.getLogger(__name__)


class GreenlightClientError(Exception):
    """Base exception for Greenlight client errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GreenlightAuthError(GreenlightClientError):
    """Session not enrolled (401)."""

    pass


class GreenlightRateLimitError(GreenlightClientError):
    """Server is rate limiting this device (429)."""

    pass


class GreenlightConnectionError(GreenlightClientError):
    """Connection error, timeout or empty response (server unreachable)."""

    pass


class GreenlightClient:
    """HTTP client for Greenlight relay operations.

    Holds one ``httpx.Client`` for its lifetime so the streamer worker can
    reuse connections across many transcript sends. Use as a context
    manager, or call ``close()``.

    Example:
        with GreenlightClient(server="https://permit.example.com") as client:
            decision = client.request_decision({"device_id": "d1", ...})
    """

    def __init__(
        self,
        server: str | None = None,
        timeout: float = 595.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            server: Relay server URL. Defaults to the public relay.
            timeout: Default request timeout in seconds.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.server = (server or DEFAULT_SERVER).rstrip("/")
        self.timeout = timeout
        self._http = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def __enter__(self) -> "GreenlightClient":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def _post(self, endpoint: str, payload: dict, timeout: float | None = None) -> httpx.Response:
        """POST JSON to an endpoint.

        Raises:
            GreenlightConnectionError: On connection failures and timeouts
        """
        url = f"{self.server}{endpoint}"
        try:
            return self._http.post(
                url,
                json=payload,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            raise GreenlightConnectionError(f"Request to {url} timed out: {e}") from e
        except httpx.TransportError as e:
            raise GreenlightConnectionError(f"Cannot connect to {self.server}: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        code = response.status_code
        if code == 401:
            reason = response.text.strip()
            raise GreenlightAuthError(
                f"Session not enrolled: {reason}" if reason else "Session not enrolled",
                status_code=401,
            )
        if code == 429:
            raise GreenlightRateLimitError("Rate limited", status_code=429)
        if code >= 400:
            raise GreenlightClientError(
                f"Greenlight server error (HTTP {code}): {response.text.strip()}",
                status_code=code,
            )

    # =========================================================================
    # Endpoints
    # =========================================================================

    def request_decision(self, payload: dict, timeout: float | None = None) -> dict[str, Any]:
        """Send a permission request and wait for the reviewer's decision.

        Args:
            payload: DecisionRequest wire body
            timeout: Override the client's default timeout

        Returns:
            Decoded response body

        Raises:
            GreenlightAuthError: On 401 (session not enrolled)
            GreenlightConnectionError: On transport failure or an empty body
                (whatever the status, except 401)
            GreenlightClientError: On any other HTTP error or a non-JSON body
        """
        response = self._post("/request", payload, timeout)
        # A bodiless answer (bare 502/503 from a proxy) means the relay never
        # decided. 401 keeps its meaning so the caller can re-enroll.
        if response.status_code != 401 and not response.content.strip():
            raise GreenlightConnectionError(
                f"Empty response from Greenlight server (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        self._raise_for_status(response)
        try:
            data = response.json()
        except ValueError as e:
            raise GreenlightClientError(
                f"Invalid response from Greenlight server: {response.text[:200]}",
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise GreenlightClientError(
                "Invalid response from Greenlight server: expected an object",
                status_code=response.status_code,
            )
        return data

    def enroll(self, device_id: str, relay_id: str, timeout: float | None = None) -> bool:
        """Enroll a relay_id for this device.

        Returns:
            True if the server approved the enrollment.

        Raises:
            GreenlightClientError: On transport or HTTP errors
        """
        response = self._post(
            "/session/enroll",
            {"device_id": device_id, "session_id": relay_id},
            timeout,
        )
        self._raise_for_status(response)
        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Enrollment returned a non-JSON body for {relay_id[:8]}")
            return False
        return isinstance(data, dict) and data.get("approved") is True

    def send_transcript(self, payload: dict, timeout: float | None = None) -> int:
        """Forward one transcript record. The response body is ignored.

        Returns:
            HTTP status code

        Raises:
            GreenlightRateLimitError: On 429
            GreenlightClientError: On other 4xx/5xx (status_code set)
            GreenlightConnectionError: On transport failure
        """
        response = self._post("/transcript", payload, timeout)
        self._raise_for_status(response)
        return response.status_code

    def notify(self, payload: dict, timeout: float | None = None) -> None:
        """Forward a host notification (idle prompt, etc.). Errors are logged."""
        try:
            response = self._post("/request", payload, timeout)
            self._raise_for_status(response)
        except GreenlightClientError as e:
            logger.warning(f"Notification forward failed: {e}")
