"""Mail delivery through an HTTP send-mail endpoint."""

import logging
from typing import Optional

import httpx

from pagewatch.core.exceptions import DeliveryError
from pagewatch.core.interfaces import Mailer
from pagewatch.core.models import Attachment

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.apify.com/v2/acts/apify~send-mail/runs"


class SendMailClient(Mailer):
    """Send mails by starting a send-mail actor run over HTTP.

    The actor input is ``{to, subject, text, attachments}`` where each
    attachment is ``{filename, data}`` with base64 ``data``.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        endpoint: str = DEFAULT_ENDPOINT,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ) -> None:
        self._endpoint = endpoint
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def send(
        self,
        to: str,
        subject: str,
        text: str,
        attachments: list[Attachment],
    ) -> None:
        payload = {
            "to": to,
            "subject": subject,
            "text": text,
            "attachments": [a.to_dict() for a in attachments],
        }
        try:
            response = await self._client.post(
                self._endpoint, json=payload, headers=self._headers
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryError(f"Could not send mail to {to}: {e}") from e

        logger.info(
            "Mail '%s' sent to %s with %d attachment(s)",
            subject,
            to,
            len(attachments),
        )
