"""Tests for the send-mail client."""

import json

import httpx
import pytest

from pagewatch.core.exceptions import DeliveryError
from pagewatch.core.models import Attachment
from pagewatch.notify.mailer import SendMailClient


class TestSendMailClient:
    """Tests for SendMailClient."""

    @pytest.mark.asyncio
    async def test_posts_actor_input(self):
        """Test the mail is posted as send-mail actor input."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"data": {"id": "run"}})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        mailer = SendMailClient(
            token="secret", endpoint="https://mail.example/send", client=client
        )
        await mailer.send(
            "ops@example.com",
            "changed",
            "body",
            [Attachment("a.png", "YWJj")],
        )

        request = seen[0]
        assert str(request.url) == "https://mail.example/send"
        assert request.headers["Authorization"] == "Bearer secret"
        assert json.loads(request.content) == {
            "to": "ops@example.com",
            "subject": "changed",
            "text": "body",
            "attachments": [{"filename": "a.png", "data": "YWJj"}],
        }

    @pytest.mark.asyncio
    async def test_rejected_mail_raises(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(413))
        )
        mailer = SendMailClient(endpoint="https://mail.example/send", client=client)
        with pytest.raises(DeliveryError, match="ops@example.com"):
            await mailer.send("ops@example.com", "s", "t", [])
