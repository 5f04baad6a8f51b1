"""Named action and callback registry for retry jobs.

Jobs persist only the name of their action and completion callback, so any
process that registers the same names can resume them after a restart.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from metasync.retry.models import RetryJob

logger = logging.getLogger(__name__)

Action = Callable[..., Any]
CompletionCallback = Callable[[RetryJob], None]


class ActionRegistry:
    """Maps action and callback names to callables."""

    def __init__(self) -> None:
        self._actions: dict[str, Action] = {}
        self._callbacks: dict[str, CompletionCallback] = {}

    def register_action(self, name: str, action: Action) -> None:
        """Register an action; re-registering the same name replaces it."""
        if not name:
            raise ValueError("Action name must be non-empty")
        if name in self._actions:
            logger.debug("Replacing retry action %s", name)
        self._actions[name] = action

    def register_callback(self, name: str, callback: CompletionCallback) -> None:
        """Register a completion callback invoked with the terminal RetryJob."""
        if not name:
            raise ValueError("Callback name must be non-empty")
        self._callbacks[name] = callback

    def action(self, name: str) -> Action:
        """Return the action registered under name.

        Raises:
            KeyError: If no action has that name.
        """
        try:
            return self._actions[name]
        except KeyError:
            raise KeyError(f"Unknown retry action: {name}") from None

    def callback(self, name: str) -> CompletionCallback:
        """Return the callback registered under name.

        Raises:
            KeyError: If no callback has that name.
        """
        try:
            return self._callbacks[name]
        except KeyError:
            raise KeyError(f"Unknown completion callback: {name}") from None

    def has_action(self, name: str) -> bool:
        return name in self._actions

    def has_callback(self, name: str) -> bool:
        return name in self._callbacks
