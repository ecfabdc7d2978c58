from typing import List, Dict, Optional

from app.channels.sender import ChannelSender
from core.job import NotificationPayload


class FakeSender(ChannelSender):
    """Sender that records deliveries in memory for test assertions."""

    def __init__(self, channel: str, should_succeed: bool = True, error: Optional[Exception] = None):
        self.channel = channel
        self.should_succeed = should_succeed
        self.error = error
        self.sent: List[Dict] = []

    def configure(self, should_succeed: bool = True, error: Optional[Exception] = None):
        """Configure the fake sender behavior for testing."""
        self.should_succeed = should_succeed
        self.error = error

    async def send(self, recipient_id: str, payload: NotificationPayload) -> bool:
        if self.error is not None:
            raise self.error
        if not self.should_succeed:
            return False

        self.sent.append({"recipient_id": recipient_id, "title": payload.title})
        return True

    def reset(self):
        """Clear recorded deliveries (useful between tests)."""
        self.sent.clear()
        self.should_succeed = True
        self.error = None
