import logging

from app.channels.sender import ChannelSender
from core.job import NotificationPayload


class LoggingSender(ChannelSender):
    """
    Development sender that only writes the notification to the log.

    Usage:
        dispatcher = MultiChannelDispatcher([LoggingSender("email"), LoggingSender("push")])
    """

    def __init__(self, channel: str):
        self.channel = channel
        self.logger = logging.getLogger(f"NotifyQueue.Channels.{channel}")

    async def send(self, recipient_id: str, payload: NotificationPayload) -> bool:
        self.logger.info(f"[{self.channel}] to {recipient_id}: {payload.title}")
        self.logger.debug(f"[{self.channel}] body: {payload.body}")
        return True
