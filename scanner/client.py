import logging
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from scanner.errors import TransportError

logger = logging.getLogger(__name__)

# Business answer from the server that retrying can never change.
MSG_NOT_FOUND = "Student not found"


@dataclass(frozen=True)
class MarkResponse:
    success: bool
    message: str
    student: dict[str, Any] | None = None

    @property
    def duplicate(self) -> bool:
        # The server only attaches a student to a failure when it was already marked.
        return not self.success and self.student is not None

    @property
    def not_found(self) -> bool:
        return not self.success and self.message == MSG_NOT_FOUND


class MarkingClient:
    """Async HTTP client for the marking endpoints, authenticated as one operator."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        on_reachability: Callable[[bool], None] | None = None,
    ):
        self.on_reachability = on_reachability
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "MarkingClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _reachable(self, reachable: bool) -> None:
        if self.on_reachability is not None:
            self.on_reachability(reachable)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, url, **kwargs)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            # No connection could be opened at all: the device is offline.
            self._reachable(False)
            raise TransportError(f"{method} {url} failed: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        self._reachable(True)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Unreadable response ({response.status_code})") from e

    async def mark(self, code: str) -> MarkResponse:
        response = await self._request("POST", "/scan-mark", json={"code": code})
        if response.status_code not in (200, 400):
            raise TransportError(f"Marking service answered {response.status_code}")

        body = self._json(response)
        if not isinstance(body, dict) or "success" not in body:
            raise TransportError(f"Unexpected marking response ({response.status_code})")
        return MarkResponse(
            success=bool(body["success"]),
            message=str(body.get("message") or ""),
            student=body.get("student"),
        )

    async def _get_json(self, url: str, **params) -> Any:
        response = await self._request("GET", url, params=params or None)
        if response.status_code != 200:
            raise TransportError(f"GET {url} answered {response.status_code}")
        return self._json(response)

    async def get_stats(self) -> dict[str, Any]:
        return await self._get_json("/stats")

    async def get_recent_logs(self, limit: int = 5) -> list[dict[str, Any]]:
        return await self._get_json("/logs", limit=limit)

    async def get_student_codes(self) -> list[dict[str, Any]]:
        return await self._get_json("/students/codes")
