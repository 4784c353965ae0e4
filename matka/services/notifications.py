"""
MATKA - Push Notifications
Fire-and-forget push messages to bettors' devices
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from matka.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class PushMessage:
    """One push notification addressed to a device token"""
    token: str
    title: str
    body: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "message": {
                "token": self.token,
                "notification": {"title": self.title, "body": self.body},
            }
        }


class PushNotifier:
    """
    Push notification sender.

    Sending never raises: delivery failures are logged and counted so a
    settlement that already committed is never reported as failed.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        server_key: Optional[str] = None,
        enabled: Optional[bool] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint if endpoint is not None else settings.PUSH_ENDPOINT
        self.server_key = server_key if server_key is not None else settings.PUSH_SERVER_KEY
        self.enabled = settings.PUSH_ENABLED if enabled is None else enabled
        self.timeout = timeout or settings.PUSH_TIMEOUT
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.enabled and self.endpoint)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.server_key:
            headers["Authorization"] = f"Bearer {self.server_key}"
        return headers

    async def _send(self, client: httpx.AsyncClient, message: PushMessage) -> bool:
        try:
            response = await client.post(self.endpoint, json=message.to_payload(), headers=self._headers())
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Push notification error: {e}")
            return False
        if response.status_code == 200:
            return True
        logger.error(f"Push send failed ({response.status_code}): {response.text}")
        return False

    async def send_many(self, messages: List[PushMessage]) -> Dict[str, int]:
        """Send each message; returns success/failure counts."""
        messages = [m for m in messages if m.token]
        if not messages or not self.is_configured():
            return {"success_count": 0, "failure_count": 0}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            results = await asyncio.gather(*(self._send(client, m) for m in messages))

        sent = sum(1 for ok in results if ok)
        logger.info(f"Notifications sent: {sent} successful, {len(results) - sent} failed")
        return {"success_count": sent, "failure_count": len(results) - sent}

    async def notify_winners(self, winners) -> Dict[str, int]:
        """One message per settled winner that has a device token."""
        messages = [
            PushMessage(
                token=winner.device_token,
                title="Congratulations! You won",
                body=f"You won {winner.win_amount} on {winner.market_title or winner.market_id} ({winner.bet_type}).",
            )
            for winner in winners
            if getattr(winner, "device_token", None)
        ]
        return await self.send_many(messages)
