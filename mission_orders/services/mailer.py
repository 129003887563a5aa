import base64
from dataclasses import dataclass
from typing import List, Optional, Sequence

import httpx
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from mission_orders.core import config
from mission_orders.core.errors import MailDeliveryError
from mission_orders.services.http_client import DEFAULT_TIMEOUT, build_auth_headers

SENDER_NAME = "رابطة ما بين الجهات لكرة القدم"

_address_adapter: TypeAdapter = TypeAdapter(EmailStr)


def validate_address(address: Optional[str]) -> str:
    if not address or not address.strip():
        raise MailDeliveryError("no recipient address")
    try:
        return _address_adapter.validate_python(address.strip())
    except PydanticValidationError as exc:
        raise MailDeliveryError(f"invalid recipient address {address!r}") from exc


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    mime_type: str = "application/pdf"


class MailSender:
    """Posts messages to a SendGrid-compatible v3 mail endpoint."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_url = api_url if api_url is not None else config.EMAIL_API_URL
        self.api_key = api_key if api_key is not None else config.EMAIL_API_KEY
        self.sender = sender or config.EMAIL_FROM
        self.transport = transport

    def build_message(
        self,
        to: Sequence[str],
        subject: str,
        html: str,
        text: str,
        attachments: Sequence[Attachment] = (),
    ) -> dict:
        message = {
            "personalizations": [{"to": [{"email": address} for address in to]}],
            "from": {"email": self.sender, "name": SENDER_NAME},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text},
                {"type": "text/html", "value": html},
            ],
        }
        if attachments:
            message["attachments"] = [
                {
                    "content": base64.b64encode(item.content).decode("ascii"),
                    "filename": item.filename,
                    "type": item.mime_type,
                    "disposition": "attachment",
                }
                for item in attachments
            ]
        return message

    async def send(
        self,
        to: Sequence[str],
        subject: str,
        html: str,
        text: str,
        attachments: Sequence[Attachment] = (),
    ) -> None:
        recipients: List[str] = [address for address in to if address]
        if not recipients:
            raise MailDeliveryError("no recipient address")
        if not self.api_url:
            raise MailDeliveryError("EMAIL_API_URL is not configured")
        message = self.build_message(recipients, subject, html, text, attachments)
        try:
            async with httpx.AsyncClient(
                timeout=DEFAULT_TIMEOUT, transport=self.transport
            ) as client:
                response = await client.post(
                    self.api_url, json=message, headers=build_auth_headers(self.api_key)
                )
        except httpx.HTTPError as exc:
            raise MailDeliveryError(f"mail transport failed: {exc}") from exc
        if response.status_code >= 300:
            detail = response.text.strip() or response.reason_phrase
            raise MailDeliveryError(f"HTTP {response.status_code} from mail API: {detail}")
