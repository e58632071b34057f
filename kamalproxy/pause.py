"""Pausing and stopping of request flow for a service."""

from __future__ import annotations

import threading
from enum import Enum, IntEnum, auto
from typing import Any


class PauseState(IntEnum):
    RUNNING = 0
    PAUSED = 1
    STOPPED = 2

    def __str__(self) -> str:
        return self.name.lower()


class PauseWaitAction(Enum):
    PROCEED = auto()
    TIMED_OUT = auto()
    STOPPED = auto()


class PauseController:
    """Holds requests while paused, and rejects them while stopped."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = PauseState.RUNNING
        self._stop_message = ""
        self._fail_after = 0.0
        self._released = threading.Event()

    @property
    def state(self) -> PauseState:
        with self._lock:
            return self._state

    @property
    def stop_message(self) -> str:
        with self._lock:
            return self._stop_message

    @property
    def fail_after(self) -> float:
        with self._lock:
            return self._fail_after

    def stop(self, message: str) -> None:
        self._set_state(PauseState.STOPPED, message)

    def pause(self, fail_after: float) -> None:
        """Pause; waiting requests give up after ``fail_after`` seconds."""
        with self._lock:
            if self._state != PauseState.PAUSED:
                self._released = threading.Event()
            self._state = PauseState.PAUSED
            self._stop_message = ""
            self._fail_after = fail_after

    def resume(self) -> None:
        self._set_state(PauseState.RUNNING, "")

    def wait(self) -> tuple[PauseWaitAction, str]:
        """Block while paused; return the action to take and any stop message."""
        with self._lock:
            state = self._state
            message = self._stop_message
            released = self._released
            fail_after = self._fail_after

        if state == PauseState.RUNNING:
            return PauseWaitAction.PROCEED, ""
        if state == PauseState.STOPPED:
            return PauseWaitAction.STOPPED, message

        if released.wait(fail_after):
            with self._lock:
                if self._state == PauseState.STOPPED:
                    return PauseWaitAction.STOPPED, self._stop_message
            return PauseWaitAction.PROCEED, ""
        return PauseWaitAction.TIMED_OUT, ""

    def to_dict(self) -> dict[str, Any]:
        """Serialise the controller; ``fail_after`` is stored in nanoseconds."""
        with self._lock:
            return {
                "state": int(self._state),
                "stop_message": self._stop_message,
                "fail_after": round(self._fail_after * 1_000_000_000),
            }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PauseController:
        controller = cls()
        state = PauseState(data.get("state", 0))
        message = data.get("stop_message", "")
        fail_after = data.get("fail_after", 0) / 1_000_000_000

        if state == PauseState.RUNNING:
            controller.resume()
        elif state == PauseState.PAUSED:
            controller.pause(fail_after)
        else:
            controller.stop(message)
        return controller

    def _set_state(self, new_state: PauseState, message: str) -> None:
        with self._lock:
            if self._state != new_state and self._state == PauseState.PAUSED:
                self._released.set()
            self._stop_message = message
            self._state = new_state