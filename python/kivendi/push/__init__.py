"""Push notification transports."""

from kivendi.push.transport import (
    DisabledPushTransport,
    FcmPushTransport,
    PushDeliveryError,
    PushMessage,
    PushTransport,
    get_push_transport,
)

__all__ = [
    "DisabledPushTransport",
    "FcmPushTransport",
    "PushDeliveryError",
    "PushMessage",
    "PushTransport",
    "get_push_transport",
]
