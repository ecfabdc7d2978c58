import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, FrozenSet, Iterable, Optional

from app.channels.sender import ChannelSender
from core.job import NotificationPayload
from core.queue.dispatcher import ChannelDispatcher, DeliveryResult, CHANNELS

logger = logging.getLogger("NotifyQueue.MultiChannelDispatcher")


@dataclass(frozen=True)
class RecipientPreferences:
    """Settings returned by the external preference lookup."""

    channels: FrozenSet[str] = field(default_factory=lambda: frozenset(CHANNELS))
    muted_categories: FrozenSet[str] = field(default_factory=frozenset)

    def allows(self, channel: str, payload: NotificationPayload) -> bool:
        return channel in self.channels and payload.category not in self.muted_categories


PreferenceLookup = Callable[[str], Awaitable[Optional[RecipientPreferences]]]


class MultiChannelDispatcher(ChannelDispatcher):
    """
    Sends a notification over every channel the recipient accepts.

    A failing channel does not stop the others; it is reported as False. A
    failing preference lookup propagates so the queue retries the job.
    """

    def __init__(self, senders: Iterable[ChannelSender], preference_lookup: Optional[PreferenceLookup] = None):
        self.senders = {}
        for sender in senders:
            if sender.channel not in CHANNELS:
                raise ValueError(f"Unknown channel: {sender.channel}")
            self.senders[sender.channel] = sender
        self.preference_lookup = preference_lookup

    async def dispatch(self, recipient_id: str, payload: NotificationPayload) -> DeliveryResult:
        preferences = None
        if self.preference_lookup is not None:
            preferences = await self.preference_lookup(recipient_id)
        preferences = preferences or RecipientPreferences()

        results = {}
        for channel, sender in self.senders.items():
            if not preferences.allows(channel, payload):
                logger.debug(f"Skipping {channel} for {recipient_id}: not accepted by recipient")
                continue

            try:
                results[channel] = bool(await sender.send(recipient_id, payload))
            except Exception as e:
                logger.error(f"{channel} delivery to {recipient_id} failed: {str(e)}")
                results[channel] = False

        return DeliveryResult.from_mapping(results)
