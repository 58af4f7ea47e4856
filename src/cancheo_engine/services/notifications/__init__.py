"""Notification inbox, toasts and delivery sinks."""

from .backend import (
    AppPresence,
    AudioCuePlayer,
    InMemoryAudioCuePlayer,
    InMemoryPlatformNotifier,
    InMemoryRewardSink,
    InMemoryToastSink,
    PlatformNotifier,
    RewardSink,
    StaticPresence,
    ToastSink,
)
from .commands import CommandOutcome, InboxCommand
from .dispatcher import NotificationDispatcher

__all__ = [
    "AppPresence",
    "AudioCuePlayer",
    "CommandOutcome",
    "InMemoryAudioCuePlayer",
    "InMemoryPlatformNotifier",
    "InMemoryRewardSink",
    "InMemoryToastSink",
    "InboxCommand",
    "NotificationDispatcher",
    "PlatformNotifier",
    "RewardSink",
    "StaticPresence",
    "ToastSink",
]
