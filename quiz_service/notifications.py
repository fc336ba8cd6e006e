import logging
from typing import Any

import httpx

logger = logging.getLogger("quiz-service")


class Notifier:
    """
    Client for the notification service. Delivery is best effort: failures are
    logged and never raised, the quiz write has already happened.
    """

    def __init__(self, base_url: str, timeout: float = 5.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def notify_batch(self, batch_id: str, *, title: str, message: str, category: str,
                           type: str, actor: dict[str, Any]) -> None:
        await self._post("/notifications/batch", {
            "batch_id": batch_id,
            "title": title,
            "message": message,
            "category": category,
            "type": type,
            "actor": actor,
        })

    async def broadcast(self, batch_ids: list[str], *, title: str, message: str, category: str,
                        type: str, actor: dict[str, Any]) -> None:
        if not batch_ids:
            return
        await self._post("/notifications/broadcast", {
            "target_batch_ids": list(batch_ids),
            "title": title,
            "message": message,
            "category": category,
            "type": type,
            "actor": actor,
        })

    async def _post(self, path: str, payload: dict[str, Any]) -> None:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(url, json=payload)
        except httpx.TimeoutException:
            logger.error("Timeout calling notification service: %s", url)
            return
        except httpx.RequestError as e:
            logger.error("Error calling notification service: %s (%s)", url, e)
            return

        if r.status_code >= 300:
            logger.error("Notification service returned %s for %s: %s", r.status_code, url, r.text[:200])
