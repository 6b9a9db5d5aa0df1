"""Async client for the Transmission RPC protocol."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import unquote, urlsplit, urlunsplit

import httpx


DEFAULT_RPC_PATH = "/transmission/rpc"
SESSION_ID_HEADER = "X-Transmission-Session-Id"


class TransmissionError(Exception):
    """Base exception for Transmission client errors."""
    pass


class TransmissionConfigError(TransmissionError):
    """Raised when the client cannot be built from the given URL."""
    pass


class TransmissionConnectionError(TransmissionError):
    """Raised when the daemon cannot be reached."""
    pass


class TransmissionAuthError(TransmissionError):
    """Raised when the daemon rejects the credentials."""
    pass


class TransmissionRPCError(TransmissionError):
    """Raised when the daemon answers with an error or an unreadable response."""

    def __init__(self, message: str, method: Optional[str] = None):
        self.method = method
        super().__init__(f"{method}: {message}" if method else message)


@dataclass(frozen=True)
class SessionStats:
    """Torrent counts and transfer totals accumulated across all sessions."""
    active_torrents: int
    paused_torrents: int
    downloaded_bytes: int
    uploaded_bytes: int


class TransmissionClient:
    """
    Transmission RPC client.

    One instance holds a single connection pool and may be shared by any
    number of concurrent tasks running on the same event loop.
    """

    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: logging.Logger = None
    ):
        """
        Initialize Transmission client.

        Args:
            url: RPC endpoint, http(s)://[user:pass@]host:port[/path] or
                unix:///path/to/socket
            timeout: Request timeout in seconds, None for no deadline
            transport: Optional transport overriding the one derived from url
            logger: Optional logger instance

        Raises:
            TransmissionConfigError: If url is not usable
        """
        self.logger = logger or logging.getLogger(__name__)
        self.endpoint, auth, uds = self._parse_url(url)

        if transport is None and uds is not None:
            transport = httpx.AsyncHTTPTransport(uds=uds)

        self._session_id: Optional[str] = None
        self._client = httpx.AsyncClient(
            auth=auth,
            timeout=timeout,
            transport=transport
        )

    @staticmethod
    def _parse_url(url: str):
        """Split url into request endpoint, basic auth and unix socket path."""
        try:
            parts = urlsplit(url)
        except ValueError as e:
            raise TransmissionConfigError(f"Invalid Transmission URL {url!r}: {e}") from e

        if parts.scheme == "unix":
            if not parts.path:
                raise TransmissionConfigError(f"Missing socket path in {url!r}")
            return f"http://localhost{DEFAULT_RPC_PATH}", None, parts.path

        if parts.scheme not in ("http", "https"):
            raise TransmissionConfigError(f"Unsupported scheme in Transmission URL {url!r}")
        if not parts.hostname:
            raise TransmissionConfigError(f"Missing host in Transmission URL {url!r}")

        try:
            port = parts.port
        except ValueError as e:
            raise TransmissionConfigError(f"Invalid port in Transmission URL {url!r}") from e

        auth = None
        if parts.username is not None:
            auth = httpx.BasicAuth(unquote(parts.username), unquote(parts.password or ""))

        netloc = parts.hostname
        if ":" in netloc:
            netloc = f"[{netloc}]"
        if port is not None:
            netloc = f"{netloc}:{port}"

        path = parts.path if parts.path not in ("", "/") else DEFAULT_RPC_PATH
        endpoint = urlunsplit((parts.scheme, netloc, path, parts.query, ""))
        return endpoint, auth, None

    async def is_port_open(self) -> bool:
        """Ask the daemon to test whether its peer port is reachable from the internet."""
        arguments = await self._call("port-test")
        return bool(self._field(arguments, "port-is-open", "port-test"))

    async def is_turtle_mode_enabled(self) -> bool:
        """Return whether alternative speed limits (turtle mode) are active."""
        arguments = await self._call("session-get", {"fields": ["alt-speed-enabled"]})
        return bool(self._field(arguments, "alt-speed-enabled", "session-get"))

    async def get_session_stats(self) -> SessionStats:
        """Return torrent counts and cumulative transfer totals."""
        arguments = await self._call("session-stats")
        cumulative = self._field(arguments, "cumulative-stats", "session-stats")
        if not isinstance(cumulative, dict):
            raise TransmissionRPCError("cumulative-stats is not an object", "session-stats")

        try:
            return SessionStats(
                active_torrents=int(self._field(arguments, "activeTorrentCount", "session-stats")),
                paused_torrents=int(self._field(arguments, "pausedTorrentCount", "session-stats")),
                downloaded_bytes=int(self._field(cumulative, "downloadedBytes", "session-stats")),
                uploaded_bytes=int(self._field(cumulative, "uploadedBytes", "session-stats")),
            )
        except (TypeError, ValueError) as e:
            raise TransmissionRPCError(f"malformed statistics: {e}", "session-stats") from e

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    @staticmethod
    def _field(arguments: Dict[str, Any], name: str, method: str) -> Any:
        if name not in arguments:
            raise TransmissionRPCError(f"response is missing {name!r}", method)
        return arguments[name]

    async def _call(self, method: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Perform one RPC call.

        A 409 answer hands out a new session id; the request is repeated
        once with it.

        Args:
            method: RPC method name
            arguments: RPC method arguments

        Returns:
            Dict: The "arguments" object of the response

        Raises:
            TransmissionError: On transport, HTTP or RPC level failure
        """
        payload = {"method": method, "arguments": arguments or {}}

        response = await self._post(payload)
        if response.status_code == 409:
            self._session_id = response.headers.get(SESSION_ID_HEADER)
            if not self._session_id:
                raise TransmissionRPCError("409 response without session id", method)
            self.logger.debug(f"Refreshed Transmission session id during {method}")
            response = await self._post(payload)

        if response.status_code in (401, 403):
            raise TransmissionAuthError(f"{method}: authentication failed (HTTP {response.status_code})")
        if response.status_code == 409:
            raise TransmissionRPCError("session id rejected twice", method)
        if response.status_code != 200:
            raise TransmissionRPCError(f"unexpected HTTP status {response.status_code}", method)

        try:
            body = response.json()
        except ValueError as e:
            raise TransmissionRPCError(f"invalid JSON response: {e}", method) from e

        if not isinstance(body, dict):
            raise TransmissionRPCError("response is not an object", method)

        result = body.get("result")
        if result != "success":
            raise TransmissionRPCError(str(result), method)

        response_arguments = body.get("arguments") or {}
        if not isinstance(response_arguments, dict):
            raise TransmissionRPCError("arguments is not an object", method)
        return response_arguments

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        headers = {}
        if self._session_id:
            headers[SESSION_ID_HEADER] = self._session_id

        try:
            return await self._client.post(self.endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise TransmissionConnectionError(f"{payload['method']}: request timed out") from e
        except httpx.HTTPError as e:
            raise TransmissionConnectionError(f"{payload['method']}: {e}") from e
