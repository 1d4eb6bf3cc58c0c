"""Polling client for the external approval service."""

from __future__ import annotations

import asyncio
import time
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from polymarket_veto.config.schema import ApprovalSettings
from polymarket_veto.core.errors import ApprovalPollingFailedError, ApprovalRequiredError
from polymarket_veto.core.models import TERMINAL_APPROVAL_STATUSES, ApprovalOutcome
from polymarket_veto.core.ports import Clock, Sleeper

API_KEY_HEADER = "X-Veto-API-Key"
REQUEST_TIMEOUT_SECONDS = 10.0


def _optional_string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


class ApprovalPoller:
    """Wait for an approval to reach ``approved``, ``denied`` or ``expired``.

    Client errors (4xx) fail immediately; server errors and network failures
    are retried until the overall deadline, after which the last retryable
    error (or a plain timeout) is raised. Any 2xx body whose ``status`` is not
    terminal keeps the loop polling.
    """

    def __init__(
        self,
        settings: ApprovalSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._clock = clock
        self._sleep = sleep

    def approval_url(self, approval_id: str) -> str:
        return f"{self.settings.base_url.rstrip('/')}/v1/approvals/{quote(approval_id, safe='')}"

    async def wait(self, approval_id: str) -> ApprovalOutcome:
        timeout_seconds = self.settings.timeout_ms / 1000
        deadline = self._clock() + timeout_seconds
        url = self.approval_url(approval_id)
        headers = {API_KEY_HEADER: self.settings.api_key}
        last_error: str | None = None
        attempts = 0

        async with httpx.AsyncClient(transport=self._transport, timeout=REQUEST_TIMEOUT_SECONDS) as client:
            while True:
                attempts += 1
                try:
                    response = await client.get(url, headers=headers)
                except httpx.HTTPError as e:
                    last_error = str(e) or type(e).__name__
                    logger.debug("Approval {} poll #{} failed: {}", approval_id, attempts, last_error)
                else:
                    if response.is_success:
                        try:
                            body = response.json()
                        except ValueError as e:
                            last_error = f"invalid JSON body: {e}"
                        else:
                            outcome = self._terminal_outcome(body)
                            if outcome is not None:
                                logger.info(
                                    "Approval {} resolved as {} after {} poll(s)",
                                    approval_id,
                                    outcome.status,
                                    attempts,
                                )
                                return outcome
                    elif 400 <= response.status_code < 500:
                        raise ApprovalPollingFailedError(
                            f"Approval polling failed: status {response.status_code}: {response.text}",
                            data={"approvalId": approval_id},
                        )
                    else:
                        text = response.text
                        last_error = f"status {response.status_code}{f': {text}' if text else ''}"
                        logger.debug("Approval {} poll #{} got {}", approval_id, attempts, last_error)

                remaining = deadline - self._clock()
                if remaining <= 0:
                    if last_error:
                        raise ApprovalPollingFailedError(
                            f"Approval polling failed: {last_error}",
                            data={"approvalId": approval_id},
                        )
                    raise ApprovalRequiredError(
                        f"Approval required but timed out after {int(timeout_seconds)}s",
                        data={"approvalId": approval_id},
                    )

                await self._sleep(min(self.settings.poll_interval_ms / 1000, remaining))

    @staticmethod
    def _terminal_outcome(body: Any) -> ApprovalOutcome | None:
        if not isinstance(body, dict):
            return None
        status = _optional_string(body.get("status"))
        if status not in TERMINAL_APPROVAL_STATUSES:
            return None
        return ApprovalOutcome(status=status, resolved_by=_optional_string(body.get("resolvedBy")))
