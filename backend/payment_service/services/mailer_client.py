from __future__ import annotations

import logging

import httpx

from ..config import settings
from ..errors import UpstreamServiceError

logger = logging.getLogger(__name__)


class MailerClient:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = (base_url or settings.service_mailer_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.http_timeout_seconds

    async def send_subscription_receipt(
        self,
        *,
        to: str,
        receipt_url: str,
        plan: str,
        username: str = "",
    ) -> None:
        """Ask the Mailer service to send the subscription confirmation with its receipt link."""
        payload = {
            "to": to,
            "receiptUrl": receipt_url,
            "username": username,
            "plan": plan,
        }
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.post(
                    f"{self._base_url}/api/mailer/subscription", json=payload
                )
            except httpx.HTTPError as exc:
                logger.error("Mailer unreachable: %s", exc)
                raise UpstreamServiceError("Service Mailer non disponible") from exc

        if response.status_code >= 400:
            logger.error(
                "Mailer rejected receipt email: status=%s body=%s",
                response.status_code,
                response.text,
            )
            raise UpstreamServiceError(
                f"Mailer failed with status {response.status_code}",
                upstream_status=response.status_code,
            )
