"""
Unit tests for the push notifier.
"""

import json
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest

from matka.services.notifications import PushMessage, PushNotifier


def winner(token, amount="950.00"):
    return SimpleNamespace(
        device_token=token,
        win_amount=Decimal(amount),
        market_title="Kalyan",
        market_id="KALYAN",
        bet_type="Single Digits",
    )


def notifier(handler, **kwargs):
    return PushNotifier(
        endpoint="https://push.test/send",
        server_key="secret",
        enabled=True,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestPushNotifier:
    """Tests for PushNotifier with a mocked transport."""

    @pytest.mark.asyncio
    async def test_one_message_per_winner_with_token(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        result = await notifier(handler).notify_winners([winner("t-1"), winner(None), winner("t-2", "10.00")])

        assert result == {"success_count": 2, "failure_count": 0}
        assert len(requests) == 2
        assert requests[0].headers["Authorization"] == "Bearer secret"
        payloads = [json.loads(r.content) for r in requests]
        assert {p["message"]["token"] for p in payloads} == {"t-1", "t-2"}
        assert any("You won 950.00 on Kalyan" in p["message"]["notification"]["body"] for p in payloads)

    @pytest.mark.asyncio
    async def test_failures_counted_not_raised(self):
        def handler(request):
            if json.loads(request.content)["message"]["token"] == "bad":
                raise httpx.ConnectError("unreachable")
            return httpx.Response(500, text="boom")

        result = await notifier(handler).notify_winners([winner("bad"), winner("t-1")])

        assert result == {"success_count": 0, "failure_count": 2}

    @pytest.mark.asyncio
    async def test_invalid_url_counted_as_failure(self):
        def handler(request):
            raise httpx.InvalidURL("Invalid non-printable ASCII character in URL")

        result = await notifier(handler).notify_winners([winner("t-1")])

        assert result == {"success_count": 0, "failure_count": 1}

    @pytest.mark.asyncio
    async def test_disabled_sends_nothing(self):
        def handler(request):
            raise AssertionError("no request expected")

        quiet = PushNotifier(endpoint="https://push.test/send", enabled=False, transport=httpx.MockTransport(handler))

        assert not quiet.is_configured()
        assert await quiet.notify_winners([winner("t-1")]) == {"success_count": 0, "failure_count": 0}

    def test_payload(self):
        payload = PushMessage(token="t", title="Hi", body="Won").to_payload()
        assert payload == {"message": {"token": "t", "notification": {"title": "Hi", "body": "Won"}}}
