"""Small publish/subscribe channel between the tree engine and its listeners."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List


@dataclass(frozen=True)
class SelectionEvent:
    identifier: str
    name: str


SelectionHandler = Callable[[str, str], None]


class SelectionBus:
    def __init__(self) -> None:
        self._handlers: List[SelectionHandler] = []

    def subscribe(self, handler: SelectionHandler) -> Callable[[], None]:
        """Register `handler(identifier, name)`; returns a function that unsubscribes it."""
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    def publish(self, event: SelectionEvent) -> int:
        """Deliver the event to every handler and return how many succeeded."""
        delivered = 0
        for handler in list(self._handlers):
            try:
                handler(event.identifier, event.name)
                delivered += 1
            except Exception as exc:
                print(f"❌ Selection handler failed for '{event.identifier}': {exc}")
        return delivered

    def clear(self) -> None:
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)
