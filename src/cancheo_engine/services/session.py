"""Session restore at startup plus explicit login/logout of the session user."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

from loguru import logger

from cancheo_engine.core.errors import RecordNotFoundError
from cancheo_engine.schemas import User
from cancheo_engine.services.notifications import NotificationDispatcher
from cancheo_engine.services.state import EngagementState


class RememberedSessionStore(Protocol):
    def get(self) -> str | None:
        ...

    def remember(self, user_id: str) -> None:
        ...

    def clear(self) -> None:
        ...


class InMemoryRememberedSession:
    def __init__(self, user_id: str | None = None) -> None:
        self.user_id = user_id

    def get(self) -> str | None:
        return self.user_id

    def remember(self, user_id: str) -> None:
        self.user_id = user_id

    def clear(self) -> None:
        self.user_id = None


class FileRememberedSession:
    """Keep the remembered user id in a small JSON file."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    def get(self) -> str | None:
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable remembered session", path=str(self._path), error=str(exc))
            return None
        user_id = payload.get("userId") if isinstance(payload, dict) else None
        return str(user_id) if user_id else None

    def remember(self, user_id: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps({"userId": user_id}), encoding="utf-8")

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class SessionRestorer:
    def __init__(
        self,
        state: EngagementState,
        dispatcher: NotificationDispatcher,
        remembered: RememberedSessionStore,
    ) -> None:
        self._state = state
        self._dispatcher = dispatcher
        self._remembered = remembered

    def restore(self) -> User | None:
        """Reconcile the remembered user id against the loaded user directory."""

        if self._state.has_session:
            return self._state.current_user

        user_id = self._remembered.get()
        if not user_id:
            return None

        user = self._state.user(user_id)
        if user is None:
            # Forget it so later startups do not repeat the failed lookup.
            self._remembered.clear()
            logger.info("Remembered user not found; session cleared", user_id=user_id)
            return None

        self._activate(user)
        logger.info("Session restored", user_id=user.id, inbox=len(self._dispatcher.inbox))
        return user

    def login(self, user_id: str) -> User:
        user = self._state.user(user_id)
        if user is None:
            raise RecordNotFoundError(f"User {user_id} not found", record_id=user_id)
        self._remembered.remember(user.id)
        self._activate(user)
        logger.info("Session started", user_id=user.id)
        return user

    def logout(self) -> None:
        previous = self._state.current_user
        self._remembered.clear()
        self._state.set_current_user(None)
        self._dispatcher.reset()
        logger.info("Session ended", user_id=previous.id if previous else None)

    def _activate(self, user: User) -> None:
        self._state.set_current_user(user.id)
        self._dispatcher.reset()
        self._dispatcher.load_inbox(
            sorted(user.notifications, key=lambda notification: notification.timestamp, reverse=True)
        )


__all__ = [
    "FileRememberedSession",
    "InMemoryRememberedSession",
    "RememberedSessionStore",
    "SessionRestorer",
]
