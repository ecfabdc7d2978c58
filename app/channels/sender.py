from abc import ABC, abstractmethod

from core.job import NotificationPayload


class ChannelSender(ABC):
    """
    Port for one delivery medium (email, SMS, push).
    Real adapters wrap a provider API; they live outside this project.
    """

    # Channel name as reported in delivery results
    channel: str = ""

    @abstractmethod
    async def send(self, recipient_id: str, payload: NotificationPayload) -> bool:
        """
        Deliver the payload to the recipient.

        Args:
            recipient_id: Target identity
            payload: Notification content

        Returns:
            True if the provider accepted the message
        """
        pass
