"""
Notification gateway backed by an HTTP notification provider.

The provider renders and delivers the message; this side only posts the
template variables and reports success or failure as a DispatchResult.
"""

from __future__ import annotations

import logging

import httpx

import config
from services.models import DispatchResult

logger = logging.getLogger(__name__)


class HttpNotificationGateway:
    def __init__(
        self,
        url: str = config.NOTIFICATION_GATEWAY_URL,
        api_key: str = config.NOTIFICATION_API_KEY,
        timeout: float = config.NOTIFICATION_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ):
        self.url = url
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = headers

    def send(self, reviewer_id: str, payload: dict) -> DispatchResult:
        body = {"recipient_id": reviewer_id, **payload}
        try:
            resp = self._client.post(self.url, json=body, headers=self._headers)
        except httpx.HTTPError as e:
            logger.warning("Notification to %s failed: %s", reviewer_id, e)
            return DispatchResult(success=False, error=f"Notification provider unreachable: {e}")

        if resp.status_code >= 400:
            detail = _error_detail(resp)
            logger.warning("Notification to %s rejected (%s): %s", reviewer_id, resp.status_code, detail)
            return DispatchResult(success=False, error=f"Notification provider returned {resp.status_code}: {detail}")

        message_id = None
        if resp.content:
            try:
                data = resp.json()
            except ValueError:
                data = None
            if isinstance(data, dict):
                message_id = data.get("id")
        return DispatchResult(success=True, message_id=message_id)

    def close(self) -> None:
        self._client.close()


def _error_detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or data)
    return str(data)
