"""
SMS gateways used to deliver OTP messages.

The Awign gateway talks to the core SMS API over HTTP; the console gateway
only logs and is meant for local development.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from bgv_otp.core.config import Settings, settings
from bgv_otp.core.exceptions import DeliveryFailed
from bgv_otp.core.otp import format_phone_e164, mask_phone

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class SMSMessage:
    mobile_number: str
    text: str
    template_id: Optional[str] = None


class SMSGateway:
    name = "base"

    def send(self, message: SMSMessage) -> None:
        """Deliver the message or raise DeliveryFailed."""
        raise NotImplementedError()

    def is_configured(self) -> bool:
        return True


class ConsoleSMSGateway(SMSGateway):
    name = "console"

    def send(self, message: SMSMessage) -> None:
        # never log the message body, it carries the code
        logger.info("[SMS-Console] To=%s (message not logged)", mask_phone(message.mobile_number))


class AwignSMSGateway(SMSGateway):
    """Awign core SMS API (template-based, DLT registered)."""

    name = "awign"

    def __init__(
        self,
        api_url: str,
        access_token: Optional[str],
        client_id: Optional[str],
        uid: Optional[str],
        sender_id: str = "IAWIGN",
        channel: str = "telspiel",
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.api_url = api_url
        self.access_token = access_token
        self.client_id = client_id
        self.uid = uid
        self.sender_id = sender_id
        self.channel = channel
        self.timeout = timeout
        self._client = client

    def is_configured(self) -> bool:
        return bool(self.access_token and self.client_id and self.uid)

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "access-token": self.access_token,
            "client": self.client_id,
            "uid": self.uid,
            "X-CLIENT_ID": "core",
        }

    def _payload(self, message: SMSMessage) -> dict:
        return {
            "sms": {
                "mobile_number": format_phone_e164(message.mobile_number),
                "template_id": message.template_id,
                "message": message.text,
                "sender_id": self.sender_id,
                "channel": self.channel,
            }
        }

    def _post(self, payload: dict) -> httpx.Response:
        if self._client is not None:
            return self._client.post(self.api_url, json=payload, headers=self._headers(), timeout=self.timeout)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(self.api_url, json=payload, headers=self._headers())

    def send(self, message: SMSMessage) -> None:
        if not self.is_configured():
            logger.error("SMS credentials not configured")
            raise DeliveryFailed("SMS service not configured")

        masked = mask_phone(message.mobile_number)
        try:
            response = self._post(self._payload(message))
        except httpx.HTTPError as e:
            logger.error("SMS API error for %s: %s", masked, str(e))
            raise DeliveryFailed("Failed to connect to SMS service") from e

        logger.info("SMS API response [%s] for %s", response.status_code, masked)

        if not response.is_success:
            logger.warning("SMS API failed [%s]: %s", response.status_code, response.text[:500])
            raise DeliveryFailed(f"Failed to send OTP SMS. API returned status {response.status_code}")

        # Some failures come back as 200 with an error body
        try:
            data = response.json()
        except ValueError:
            logger.info("SMS API response is not JSON, assuming success")
            return

        if isinstance(data, dict) and (
            data.get("error") or data.get("status") == "error" or data.get("success") is False
        ):
            logger.warning("SMS API returned error body for %s: %s", masked, data)
            raise DeliveryFailed(str(data.get("message") or data.get("error") or "Failed to send OTP SMS"))


def build_sms_gateway(config: Settings) -> SMSGateway:
    if config.SMS_PROVIDER == "console":
        return ConsoleSMSGateway()
    return AwignSMSGateway(
        api_url=config.SMS_API_URL,
        access_token=config.SMS_ACCESS_TOKEN,
        client_id=config.SMS_CLIENT_ID,
        uid=config.SMS_UID,
        sender_id=config.SMS_SENDER_ID,
        channel=config.SMS_CHANNEL,
        timeout=config.SMS_TIMEOUT_SECONDS,
    )


def get_sms_gateway() -> SMSGateway:
    """Dependency to get the configured SMS gateway"""
    return build_sms_gateway(settings)
