# User-visible confirmations and failures (the console's toasts).
from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, List, Literal

logger = logging.getLogger("aptconsole.notifications")

Level = Literal["success", "error", "info"]


class Notifier:
    """
    Bounded queue of notifications waiting to be shown.

    The renderer drains it after each action; old entries fall off once
    max_items is reached.
    """

    def __init__(self, max_items: int = 50) -> None:
        self._items: Deque[Dict[str, str]] = deque(maxlen=max_items)

    def push(self, level: Level, message: str) -> None:
        self._items.append({"level": level, "message": message})
        if level == "error":
            logger.warning("notify.%s %s", level, message)
        else:
            logger.info("notify.%s %s", level, message)

    def success(self, message: str) -> None:
        self.push("success", message)

    def error(self, message: str) -> None:
        self.push("error", message)

    def info(self, message: str) -> None:
        self.push("info", message)

    def pending(self) -> List[Dict[str, str]]:
        return list(self._items)

    def drain(self) -> List[Dict[str, str]]:
        items = list(self._items)
        self._items.clear()
        return items
