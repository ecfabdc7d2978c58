"""
Channel dispatchers plugged into the notification queue.
"""

from app.channels.sender import ChannelSender
from app.channels.logging_sender import LoggingSender
from app.channels.fake_sender import FakeSender
from app.channels.multi_channel import MultiChannelDispatcher, RecipientPreferences

__all__ = [
    "ChannelSender",
    "LoggingSender",
    "FakeSender",
    "MultiChannelDispatcher",
    "RecipientPreferences",
]
