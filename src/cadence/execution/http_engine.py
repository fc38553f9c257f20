"""HTTP client for a remote workflow execution engine."""

from __future__ import annotations

from typing import Any

import httpx

from cadence.errors import DispatchError
from cadence.infrastructure.logger import logger
from cadence.scheduling.types import EngineResponse


class HttpExecutionEngine:
    """POSTs {"workflow_id", "inputs"} to the engine and maps its JSON reply.

    The engine answers {"success": true, "data": ...} or {"success": false, "error": "..."}.
    Non-2xx responses and undecodable bodies are reported as unsuccessful responses;
    transport errors are raised as DispatchError.
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._timeout = timeout_s
        self._transport = transport

    async def invoke(self, workflow_id: str, inputs: Any) -> EngineResponse:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self._url,
                    json={"workflow_id": workflow_id, "inputs": inputs},
                    headers=self._headers,
                )
        except httpx.TimeoutException as err:
            raise DispatchError(f"Execution engine timed out: {err}", kind="timeout") from err
        except httpx.HTTPError as err:
            raise DispatchError(f"Execution engine unreachable: {err}", kind="exception") from err

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            error = body.get("error") if isinstance(body, dict) else None
            logger.warning("Execution engine returned error status", workflow_id=workflow_id, status=response.status_code)
            return EngineResponse(success=False, error=error or f"HTTP {response.status_code}")

        if not isinstance(body, dict):
            return EngineResponse(success=False, error="Execution engine returned a non-JSON response")

        return EngineResponse(
            success=bool(body.get("success", False)),
            data=body.get("data", body.get("outputs")),
            error=body.get("error"),
        )
