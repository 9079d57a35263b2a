"""
Realtime Call Bridge - Results Reporter

Posts call results to the external results collector.

Reporting is best-effort: one attempt, no retry. Failures (transport errors
or non-2xx responses) are logged and never propagate to call teardown.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from callbridge.config import Settings
from callbridge.core.exceptions import ResultsReportError
from callbridge.core.types import CallResult

logger = logging.getLogger(__name__)


class ResultsReporter:
    """
    HTTP client for the results collector.

    Usage:
        async with httpx.AsyncClient(timeout=10) as client:
            reporter = ResultsReporter("https://collector/results", client, api_key="...")
            await reporter.report(result)
    """

    def __init__(
        self,
        endpoint_url: str,
        client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        event_type: str = "openai-realtime-end",
    ):
        """
        Args:
            endpoint_url: Collector URL receiving the POST
            client: Shared HTTP client (owned by the caller)
            api_key: Sent as `apikey` and bearer token when set
            event_type: Value of the `type` field in the payload
        """
        self._endpoint_url = endpoint_url
        self._client = client
        self._api_key = api_key
        self._event_type = event_type

    async def report(self, result: CallResult) -> bool:
        """
        Send one call result.

        Returns:
            True if the collector accepted it (2xx), False otherwise
        """
        try:
            await self._post(result.to_payload(self._event_type))
        except ResultsReportError as e:
            logger.error(
                "Failed to post results: %s %s",
                e.details.get("status_code"),
                e.details.get("body", ""),
            )
            return False
        except httpx.HTTPError as e:
            logger.error("Failed to post call results: %s", str(e))
            return False

        logger.info("Results posted for call %s", result.call_id)
        return True

    async def _post(self, payload: dict) -> None:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["Authorization"] = f"Bearer {self._api_key}"

        response = await self._client.post(
            self._endpoint_url,
            json=payload,
            headers=headers,
        )

        if not response.is_success:
            raise ResultsReportError(
                f"Results collector returned {response.status_code}",
                details={
                    "status_code": response.status_code,
                    "body": response.text[:500],
                },
            )


def create_results_reporter(
    settings: Settings,
    client: httpx.AsyncClient,
) -> Optional[ResultsReporter]:
    """
    Build the reporter from settings.

    Returns:
        None when no results endpoint is configured
    """
    if not settings.results_reporting_enabled:
        logger.info("Results reporting disabled (no RESULTS_ENDPOINT_URL)")
        return None

    return ResultsReporter(
        endpoint_url=settings.results_endpoint_url,
        client=client,
        api_key=settings.results_api_key,
        event_type=settings.results_event_type,
    )
