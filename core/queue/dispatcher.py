from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, Mapping

from core.job import NotificationPayload

CHANNELS = ("email", "sms", "push")


def _channel_succeeded(value: Any) -> bool:
    # Channels report either a plain bool or a {"success": bool, ...} dict
    if isinstance(value, Mapping):
        return bool(value.get("success"))
    return bool(value)


@dataclass(frozen=True)
class DeliveryResult:
    """Per-channel outcome of one delivery attempt."""

    email: bool = False
    sms: bool = False
    push: bool = False

    @property
    def any_success(self) -> bool:
        """Partial delivery counts as delivered."""
        return self.email or self.sms or self.push

    def to_dict(self) -> Dict[str, bool]:
        return {"email": self.email, "sms": self.sms, "push": self.push}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "DeliveryResult":
        return cls(**{channel: _channel_succeeded(data.get(channel)) for channel in CHANNELS})


class ChannelDispatcher(ABC):
    """
    Delivers one notification to one recipient over whatever channels apply.
    Implementations live outside the queue core (see app/channels).
    """

    @abstractmethod
    async def dispatch(self, recipient_id: str, payload: NotificationPayload) -> DeliveryResult:
        """
        Attempt delivery.

        Args:
            recipient_id: Target identity
            payload: Notification content

        Returns:
            DeliveryResult with one flag per channel. Raising is treated the
            same as every channel failing.
        """
        pass
