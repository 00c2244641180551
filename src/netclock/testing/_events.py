"""Event bus that records every publication."""

from __future__ import annotations

from netclock._events import LocalEventBus


class RecordingEventBus(LocalEventBus):
    """LocalEventBus that also keeps a log of published event names."""

    def __init__(self) -> None:
        super().__init__()
        self.published: list[str] = []

    def publish(self, event: str) -> None:
        self.published.append(event)
        super().publish(event)

    def count(self, event: str) -> int:
        """How often *event* has been published."""
        return self.published.count(event)
