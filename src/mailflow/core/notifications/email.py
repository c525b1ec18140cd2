"""Email transports.

``ResendTransport`` sends through the Resend API; ``LogOnlyTransport`` is used
when no API key is configured and only logs what would have been sent.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol
from uuid import UUID, uuid4

import resend

from src.mailflow.core.config import Settings, get_settings
from src.mailflow.core.logging import get_logger
from src.mailflow.schemas.jobs import EmailMessage, SendingResult

logger = get_logger(__name__)

# Thread pool for the blocking Resend SDK
_email_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="email_sender")


class EmailTransport(Protocol):
    async def send(self, message: EmailMessage, tenant_id: UUID) -> SendingResult: ...


def _format_sender(message: EmailMessage) -> str:
    if message.from_name:
        return f"{message.from_name} <{message.from_email}>"
    return message.from_email


class ResendTransport:
    provider = "resend"

    def __init__(self, api_key: str, timeout_seconds: float = 10):
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    async def send(self, message: EmailMessage, tenant_id: UUID) -> SendingResult:
        """Send one message through Resend without blocking the event loop.

        Args:
            message: Rendered message (already personalized)
            tenant_id: Tenant the send is attributed to, for logging

        Returns:
            SendingResult with the provider message id, or ``success=False``
            and the error on timeout or SDK failure
        """
        resend.api_key = self.api_key
        params: dict[str, object] = {
            "from": _format_sender(message),
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        if message.text:
            params["text"] = message.text
        if message.reply_to:
            params["reply_to"] = message.reply_to

        def _send() -> dict[str, object]:
            return resend.Emails.send(params)  # type: ignore[arg-type,return-value]

        loop = asyncio.get_running_loop()
        try:
            response = await asyncio.wait_for(
                loop.run_in_executor(_email_executor, _send),
                timeout=self.timeout_seconds,
            )
        except TimeoutError:
            logger.error(
                "Email send timed out",
                to=message.to,
                tenant_id=str(tenant_id),
                timeout=self.timeout_seconds,
            )
            return SendingResult(success=False, error="Email send timed out", provider=self.provider)
        except Exception as e:
            logger.error("Failed to send email", to=message.to, tenant_id=str(tenant_id), error=str(e))
            return SendingResult(success=False, error=str(e), provider=self.provider)

        message_id = response.get("id") if isinstance(response, dict) else None
        logger.info("Email sent", to=message.to, tenant_id=str(tenant_id), message_id=message_id)
        return SendingResult(
            success=True,
            message_id=str(message_id) if message_id else None,
            provider=self.provider,
        )


class LogOnlyTransport:
    """Dev mode: log email content instead of sending."""

    provider = "log"

    async def send(self, message: EmailMessage, tenant_id: UUID) -> SendingResult:
        logger.warning(
            "RESEND_API_KEY not set - email not sent",
            to=message.to,
            subject=message.subject,
            tenant_id=str(tenant_id),
        )
        return SendingResult(success=True, message_id=f"log-{uuid4().hex}", provider=self.provider)


def get_email_transport(settings: Settings | None = None) -> EmailTransport:
    settings = settings or get_settings()
    if not settings.resend_api_key:
        return LogOnlyTransport()
    return ResendTransport(settings.resend_api_key, settings.email_send_timeout_seconds)
