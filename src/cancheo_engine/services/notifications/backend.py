"""Delivery sinks used by the notification dispatcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Protocol

from cancheo_engine.schemas import Notification, Venue


class PlatformNotifier(Protocol):
    """Operating-system level alert (web push, desktop notification)."""

    async def notify(self, title: str, body: str) -> None:
        ...


class AudioCuePlayer(Protocol):
    async def play(self) -> None:
        ...


class AppPresence(Protocol):
    """Reports whether the host app is backgrounded and allowed to alert."""

    def is_backgrounded(self) -> bool:
        ...

    def platform_permission_granted(self) -> bool:
        ...


class ToastSink(Protocol):
    """Transient UI surface for ephemeral notifications."""

    def toast(self, notification: Notification) -> None:
        ...


class RewardSink(Protocol):
    """Presents the free-ticket celebration for a venue."""

    def present(self, venue: Venue) -> None:
        ...


@dataclass
class StaticPresence:
    """Presence fixed at construction; the default is a foreground app."""

    backgrounded: bool = False
    permission_granted: bool = False

    def is_backgrounded(self) -> bool:
        return self.backgrounded

    def platform_permission_granted(self) -> bool:
        return self.permission_granted


@dataclass
class InMemoryPlatformNotifier:
    """Stores platform alerts for inspection in tests."""

    sent_alerts: List[tuple[str, str]] = field(default_factory=list)

    async def notify(self, title: str, body: str) -> None:
        self.sent_alerts.append((title, body))


@dataclass
class InMemoryAudioCuePlayer:
    plays: int = 0

    async def play(self) -> None:
        self.plays += 1


@dataclass
class InMemoryToastSink:
    toasts: List[Notification] = field(default_factory=list)

    def toast(self, notification: Notification) -> None:
        self.toasts.append(notification)


@dataclass
class InMemoryRewardSink:
    presented: List[Venue] = field(default_factory=list)

    def present(self, venue: Venue) -> None:
        self.presented.append(venue)


__all__ = [
    "AppPresence",
    "AudioCuePlayer",
    "InMemoryAudioCuePlayer",
    "InMemoryPlatformNotifier",
    "InMemoryRewardSink",
    "InMemoryToastSink",
    "PlatformNotifier",
    "RewardSink",
    "StaticPresence",
    "ToastSink",
]
