"""
Backend Q&A adapter.

Role in the system:
- Receives one query per QueryBackend command.
- POSTs {"query": ...} to the backend and reads {"response": ...}.
- Emits exactly one terminal event per query:
    - BackendAnswered(query_id, response), or
    - BackendFailed(query_id, reason)

Architectural constraints:
- Fire-and-forget: query() schedules work and returns.
- No retries; a failure surfaces once as an inline message upstream.
- In-flight queries are never cancelled by newer ones; staleness is
  decided by the reducer from query_id.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

import httpx

from observability.metrics import timed
from orchestrator.events import BackendAnswered, BackendFailed, Event, EventType


class BackendResponseError(ValueError):
    """Backend replied 2xx with a body that has no usable response text."""


def parse_response(payload: Any) -> str:
    if not isinstance(payload, dict) or not isinstance(payload.get("response"), str):
        raise BackendResponseError("missing 'response' string in backend reply")
    return payload["response"]


class BackendQAAdapter:
    """
    HTTP client for the Q&A endpoint.

    Design:
    - One shared httpx.AsyncClient, created lazily (or injected)
    - One asyncio task per query_id
    """

    def __init__(
        self,
        *,
        emit_event: Callable[[Event], Awaitable[None]],
        url: str,
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._emit_event = emit_event
        self._url = url
        self._timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None
        self._tasks: dict[int, asyncio.Task[None]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def query(self, *, query_id: int, query: str) -> None:
        """Schedule one backend request. Duplicate query_ids are ignored."""
        if query_id in self._tasks:
            return

        task = asyncio.create_task(self._run_query(query_id=query_id, query=query))
        self._tasks[query_id] = task

        def _cleanup(_: asyncio.Task[None]) -> None:
            self._tasks.pop(query_id, None)

        task.add_done_callback(_cleanup)

    async def aclose(self) -> None:
        """Cancel in-flight queries and close the owned HTTP client."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    async def _run_query(self, *, query_id: int, query: str) -> None:
        """Emits exactly one of BackendAnswered / BackendFailed."""
        try:
            with timed("backend_query_latency", details={"query_id": query_id}) as m:
                response = await self._ensure_client().post(
                    self._url,
                    json={"query": query},
                )
                m.details["status"] = response.status_code
                response.raise_for_status()
                answer = parse_response(response.json())

        except asyncio.CancelledError:
            # Shutdown only; silent
            pass

        except Exception as exc:  # pylint: disable=broad-exception-caught
            await self._emit_event(
                BackendFailed(
                    event_type=EventType.BACKEND_FAILED,
                    ts_ms=self._now_ms(),
                    query_id=query_id,
                    reason=f"{type(exc).__name__}: {exc}",
                )
            )

        else:
            await self._emit_event(
                BackendAnswered(
                    event_type=EventType.BACKEND_ANSWERED,
                    ts_ms=self._now_ms(),
                    query_id=query_id,
                    response=answer,
                )
            )

    @staticmethod
    def _now_ms() -> int:
        """Wall-clock timestamp in milliseconds (coarse)."""
        return int(time.time() * 1000)
