"""
HTTP notification dispatcher: driver push through a push gateway and
contact SMS through a Twilio-compatible Messages API.
"""
from __future__ import annotations

from typing import Optional

import httpx

from application.ports.notifications import NotificationOutcome, NotificationPayload
from core.config import NotificationSettings
from core.logging_config import get_logger
from domain.common.exceptions import TransientDeliveryError
from infrastructure.external.api_clients.base import APIError, BaseAPIClient


logger = get_logger(__name__)


class PushGatewayClient(BaseAPIClient):
    async def push(self, driver_id: str, payload: NotificationPayload):
        return await self.post(
            "push",
            json_data={
                "recipient": driver_id,
                "title": payload.title,
                "body": payload.body,
                "data": payload.data,
            },
        )


class SmsApiClient(BaseAPIClient):
    def __init__(self, base_url: str, account_sid: str, from_number: str, **kwargs):
        super().__init__(base_url, **kwargs)
        self.account_sid = account_sid
        self.from_number = from_number

    async def send_message(self, to: str, body: str):
        return await self.post(
            f"Accounts/{self.account_sid}/Messages.json",
            data={"To": to, "From": self.from_number, "Body": body},
        )


class HttpNotificationDispatcher:
    """NotificationDispatcher over HTTP. Unconfigured channels report not delivered."""

    def __init__(
        self,
        push_client: Optional[PushGatewayClient] = None,
        sms_client: Optional[SmsApiClient] = None,
    ) -> None:
        self.push_client = push_client
        self.sms_client = sms_client

    @classmethod
    def from_settings(
        cls,
        config: NotificationSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "HttpNotificationDispatcher":
        push_client = None
        if config.push_gateway_url:
            push_client = PushGatewayClient(
                config.push_gateway_url,
                timeout=config.timeout,
                max_retries=config.max_retries,
                auth_token=config.push_api_key,
                transport=transport,
            )
        sms_client = None
        if config.sms_api_url and config.sms_account_sid and config.sms_from_number:
            sms_client = SmsApiClient(
                config.sms_api_url,
                account_sid=config.sms_account_sid,
                from_number=config.sms_from_number,
                timeout=config.timeout,
                max_retries=config.max_retries,
                basic_auth=(config.sms_account_sid, config.sms_auth_token or ""),
                transport=transport,
            )
        return cls(push_client=push_client, sms_client=sms_client)

    async def send(self, driver_id: str, payload: NotificationPayload) -> NotificationOutcome:
        if self.push_client is None:
            logger.debug("push_not_configured", driver_id=driver_id)
            return NotificationOutcome(False, "push", driver_id, error="push gateway not configured")
        try:
            await self.push_client.push(driver_id, payload)
        except APIError as exc:
            raise TransientDeliveryError(
                f"Push to driver {driver_id} failed: {exc}",
                channel="push",
                details={"driver_id": driver_id, "status_code": exc.status_code},
            ) from exc
        return NotificationOutcome(True, "push", driver_id)

    async def send_sms(self, phone: str, message: str) -> NotificationOutcome:
        if self.sms_client is None:
            logger.debug("sms_not_configured")
            return NotificationOutcome(False, "sms", phone, error="sms not configured")
        try:
            await self.sms_client.send_message(phone, message)
        except APIError as exc:
            raise TransientDeliveryError(
                f"SMS delivery failed: {exc}",
                channel="sms",
                details={"status_code": exc.status_code},
            ) from exc
        return NotificationOutcome(True, "sms", phone)

    async def aclose(self) -> None:
        for client in (self.push_client, self.sms_client):
            if client is not None:
                await client.close()
