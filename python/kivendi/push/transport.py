"""Push transports.

Provides:
- PushTransport: Protocol for device-targeted delivery
- FcmPushTransport: Firebase Cloud Messaging via firebase-admin
- DisabledPushTransport: used when no FCM credentials are configured

Each message is delivered both as a data message (handled by the app in
the background) and as a visible alert (APNS alert, Android high priority).
FCM data values must be strings; the transport stringifies them.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from kivendi.config import Settings, get_settings
from kivendi.logging import get_logger

logger = get_logger(__name__)

FCM_APP_NAME = "kivendi-push"


@dataclass(frozen=True)
class PushMessage:
    """Normalized push payload for one device token."""

    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)


class PushDeliveryError(Exception):
    """Delivery to one token failed.

    Attributes:
        invalid_token: True when the token is unregistered or malformed and
            should be deleted.
    """

    def __init__(self, message: str, *, invalid_token: bool = False):
        self.message = message
        self.invalid_token = invalid_token
        super().__init__(message)


class PushTransport(Protocol):
    """Device-targeted push delivery."""

    def send(self, token: str, message: PushMessage) -> None:
        """Deliver message to token.

        Raises:
            PushDeliveryError: Delivery failed for this token.
        """
        ...


def stringify_data(data: dict[str, Any]) -> dict[str, str]:
    """Convert a data bag to the string-only map FCM requires. None values are dropped."""
    return {key: str(value) for key, value in data.items() if value is not None}


def redact_token(token: str) -> str:
    return f"{token[:12]}..." if len(token) > 12 else "****"


class FcmPushTransport:
    """Firebase Cloud Messaging transport."""

    def __init__(self, credentials_file: str, *, app: firebase_admin.App | None = None):
        if app is None:
            try:
                app = firebase_admin.get_app(FCM_APP_NAME)
            except ValueError:
                app = firebase_admin.initialize_app(
                    credentials.Certificate(credentials_file), name=FCM_APP_NAME
                )
        self._app = app
        logger.info("fcm_push_transport_initialized", credentials_file=credentials_file)

    def build_message(self, token: str, message: PushMessage) -> messaging.Message:
        return messaging.Message(
            token=token,
            data=message.data,
            apns=messaging.APNSConfig(
                headers={"apns-priority": "10"},
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(
                        alert=messaging.ApsAlert(title=message.title, body=message.body),
                        sound="default",
                        content_available=True,
                        mutable_content=True,
                    )
                ),
            ),
            android=messaging.AndroidConfig(priority="high", data=message.data),
        )

    def send(self, token: str, message: PushMessage) -> None:
        try:
            messaging.send(self.build_message(token, message), app=self._app)
        except (messaging.UnregisteredError, exceptions.InvalidArgumentError) as e:
            raise PushDeliveryError(str(e), invalid_token=True) from e
        except (exceptions.FirebaseError, ValueError) as e:
            raise PushDeliveryError(str(e)) from e


class DisabledPushTransport:
    """Transport used when push is not configured. Drops every message."""

    def send(self, token: str, message: PushMessage) -> None:
        logger.debug("push_disabled_dropped", token=redact_token(token), title=message.title)


def get_push_transport(settings: Settings | None = None) -> PushTransport:
    """Build the configured push transport.

    Returns:
        FcmPushTransport if FCM_CREDENTIALS_FILE is set, DisabledPushTransport otherwise.
    """
    settings = settings or get_settings()
    if not settings.fcm_credentials_file:
        logger.warning("push_disabled", reason="FCM_CREDENTIALS_FILE not set")
        return DisabledPushTransport()
    return FcmPushTransport(settings.fcm_credentials_file)
