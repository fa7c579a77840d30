"""Single-writer holder for the current workspace root."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, List, Tuple

from . import workspace as ws
from .config import Settings
from .device_types import DeviceTypeRegistry
from .logging_utils import log_event
from .workspace import Workspace

logger = logging.getLogger(__name__)

Action = Callable[..., Workspace]
Listener = Callable[[Workspace, Workspace], None]


class WorkspaceStore:
    """Applies pure workspace actions atomically and keeps prior roots for undo.

    An action either returns a new root, which replaces the current one, or
    raises, in which case the current root is left as it was. Readers may hold
    on to any root they were handed; roots are never mutated.
    """

    def __init__(
        self,
        workspace: Workspace | None = None,
        *,
        settings: Settings | None = None,
        registry: DeviceTypeRegistry | None = None,
        history_limit: int = 100,
    ) -> None:
        self.settings = settings or Settings()
        self.registry = registry or self.settings.device_registry()
        self._state = workspace or Workspace()
        self._history: Deque[Workspace] = deque(maxlen=history_limit)
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    @property
    def state(self) -> Workspace:
        return self._state

    @property
    def history(self) -> Tuple[Workspace, ...]:
        return tuple(self._history)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(previous, current)``; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def apply(self, action: Action, *args: Any, **kwargs: Any) -> Workspace:
        with self._lock:
            previous = self._state
            current = action(previous, *args, **kwargs)
            if not isinstance(current, Workspace):
                raise TypeError(f"{getattr(action, '__name__', action)!r} did not return a Workspace")
            self._history.append(previous)
            self._state = current
        log_event(
            logger,
            "workspace_updated",
            action=getattr(action, "__name__", str(action)),
            revision=current.revision,
        )
        self._notify(previous, current)
        return current

    def _notify(self, previous: Workspace, current: Workspace) -> None:
        # The new root is already committed when listeners run.
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception:
                logger.exception("Workspace listener %r failed at revision %s", listener, current.revision)

    def undo(self) -> Workspace:
        with self._lock:
            if not self._history:
                raise IndexError("nothing to undo")
            previous = self._state
            self._state = self._history.pop()
            current = self._state
        log_event(logger, "workspace_undo", revision=current.revision)
        self._notify(previous, current)
        return current

    # Convenience wrappers that inject settings and the device registry.

    def create_animal(self, animal_id: str, subject: Any, **kwargs: Any) -> Workspace:
        kwargs.setdefault("settings", self.settings)
        kwargs.setdefault("registry", self.registry)
        return self.apply(ws.create_animal, animal_id, subject, **kwargs)

    def update_animal(self, animal_id: str, changes: Any) -> Workspace:
        return self.apply(ws.update_animal, animal_id, changes)

    def delete_animal(self, animal_id: str, *, cascade: bool = False) -> Workspace:
        return self.apply(ws.delete_animal, animal_id, cascade=cascade)

    def add_configuration_snapshot(self, animal_id: str, description: str = "") -> Workspace:
        return self.apply(ws.add_configuration_snapshot, animal_id, description)

    def create_day(self, animal_id: str, date: Any, session: Any = None, **kwargs: Any) -> Workspace:
        kwargs.setdefault("settings", self.settings)
        return self.apply(ws.create_day, animal_id, date, session, **kwargs)

    def update_day(self, day_id: str, changes: Any) -> Workspace:
        return self.apply(ws.update_day, day_id, changes)

    def delete_day(self, day_id: str) -> Workspace:
        return self.apply(ws.delete_day, day_id)

    def add_electrode_group(self, animal_id: str, group: Any) -> Workspace:
        return self.apply(ws.add_electrode_group, animal_id, group, registry=self.registry)

    def set_device_type(self, animal_id: str, group_id: int, device_type: str) -> Workspace:
        return self.apply(ws.set_device_type, animal_id, group_id, device_type, registry=self.registry)

    def delete_electrode_group(self, animal_id: str, group_id: int) -> Workspace:
        return self.apply(ws.delete_electrode_group, animal_id, group_id)

    def duplicate_electrode_group(self, animal_id: str, group_id: int) -> Workspace:
        return self.apply(ws.duplicate_electrode_group, animal_id, group_id)

    def reassign_channel(self, animal_id: str, ntrode_id: int, logical: int, hardware: int) -> Workspace:
        return self.apply(ws.reassign_channel, animal_id, ntrode_id, logical, hardware)

    def set_bad_channels(self, day_id: str, group_id: int, channels: Any) -> Workspace:
        return self.apply(ws.set_bad_channels, day_id, group_id, channels)


__all__ = ["WorkspaceStore"]
