"""Dashboard notifier: pushes a new event and state to the feed server.

Best effort. The dashboard may not be running; a failed push is logged and
reported as False, never raised.
"""

from __future__ import annotations

import logging

import httpx

from jrpg_visualizer.models import BattleEvent, BattleState, DashboardNotification

logger = logging.getLogger(__name__)

EVENTS_PATH = "/api/events"


class DashboardNotifier:
    """POSTs {event, state} to ``{dashboard_url}/api/events``.

    Args:
        dashboard_url: Base URL of the dashboard feed server.
        timeout:       HTTP timeout in seconds.
    """

    def __init__(self, dashboard_url: str = "http://localhost:3000", timeout: float = 5.0) -> None:
        self._base_url = dashboard_url.rstrip("/")
        self._timeout = timeout

    @property
    def url(self) -> str:
        return f"{self._base_url}{EVENTS_PATH}"

    async def notify(self, event: BattleEvent, state: BattleState) -> bool:
        notification = DashboardNotification(event=event, state=state)
        body = notification.model_dump(mode="json", by_alias=True)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self.url, json=body)
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("Dashboard notification failed: HTTP %d", e.response.status_code)
            return False
        except httpx.HTTPError as e:
            logger.debug("Could not notify dashboard at %s: %s", self._base_url, e)
            return False
        return True
