"""
Outbound notification channels
"""
from .http_dispatcher import HttpNotificationDispatcher, PushGatewayClient, SmsApiClient

__all__ = ["HttpNotificationDispatcher", "PushGatewayClient", "SmsApiClient"]
