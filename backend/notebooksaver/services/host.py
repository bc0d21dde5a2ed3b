"""
NotebookSaver Backend — Host Lifecycle
=======================================

What:  Tracks whether the host (the capture app driving this backend) is in
       the foreground, and runs listeners on each transition.
Why:   Drafts can only be opened while the host is foregrounded. The queue
       asks `is_active` before a hand-off, and drains on every
       background → foreground transition.

Listeners run in registration order and only on a real transition: a
second activate() while already active runs nothing, so a drain is
triggered exactly once per foreground transition.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Union

logger = logging.getLogger(__name__)

Listener = Callable[[], Union[Any, Awaitable[Any]]]


class HostLifecycle:
    def __init__(self, active: bool = False):
        self._active = active
        self._on_foreground: List[Listener] = []
        self._on_background: List[Listener] = []

    @property
    def is_active(self) -> bool:
        return self._active

    def on_foreground(self, listener: Listener) -> None:
        self._on_foreground.append(listener)

    def on_background(self, listener: Listener) -> None:
        self._on_background.append(listener)

    async def activate(self) -> bool:
        """Mark the host active. Returns False if it already was."""
        if self._active:
            return False
        self._active = True
        logger.info("Host entered the foreground")
        await self._run(self._on_foreground)
        return True

    async def deactivate(self) -> bool:
        """Mark the host inactive. Returns False if it already was."""
        if not self._active:
            return False
        self._active = False
        logger.info("Host entered the background")
        await self._run(self._on_background)
        return True

    @staticmethod
    async def _run(listeners: List[Listener]) -> None:
        for listener in listeners:
            result = listener()
            if inspect.isawaitable(result):
                await result
