"""FIFO rotation queues.

A rotation queue orders the brokers of one location so that whoever
worked there longest ago comes first. External locations keep one queue
for their shifts; internal locations keep one for Saturday duty.
"""

from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, Iterator, Optional


@dataclass
class QueueEntry:
    """One broker's row in a rotation queue.

    Attributes:
        broker_id: Broker in the queue.
        position: 1-based queue position.
        times_assigned: How many times the broker was taken from this queue.
        last_assigned: Date of the last assignment taken from this queue.
    """

    broker_id: str
    position: int
    times_assigned: int = 0
    last_assigned: Optional[date] = None


class RotationQueue:
    """Ordered collection of queue entries for a single location.

    Every allocation moves the broker to the tail and renumbers the
    positions 1..N, so relative order of everyone else is preserved.

    Example:
        >>> queue = RotationQueue("L1", ["A", "B", "C"])
        >>> queue.move_to_tail("A")
        >>> queue.positions()
        {'B': 1, 'C': 2, 'A': 3}
    """

    def __init__(
        self,
        location_id: str,
        broker_ids: Optional[Iterable[str]] = None,
        entries: Optional[Iterable[QueueEntry]] = None,
    ):
        self.location_id = location_id
        self._entries: list[QueueEntry] = []
        if entries is not None:
            self._entries = sorted((replace(e) for e in entries), key=lambda e: e.position)
        for broker_id in broker_ids or []:
            if broker_id not in self:
                self._entries.append(QueueEntry(broker_id=broker_id, position=0))
        self._renumber()

    def __contains__(self, broker_id: object) -> bool:
        return any(e.broker_id == broker_id for e in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[QueueEntry]:
        return iter(list(self._entries))

    def __repr__(self) -> str:
        order = ", ".join(e.broker_id for e in self._entries)
        return f"RotationQueue({self.location_id!r}, [{order}])"

    def _renumber(self) -> None:
        for index, entry in enumerate(self._entries):
            entry.position = index + 1

    def entry(self, broker_id: str) -> Optional[QueueEntry]:
        for entry in self._entries:
            if entry.broker_id == broker_id:
                return entry
        return None

    def position_of(self, broker_id: str, default: int = 999) -> int:
        """Queue position of a broker, or ``default`` when absent."""
        entry = self.entry(broker_id)
        return entry.position if entry else default

    def positions(self) -> dict[str, int]:
        """Map every broker in the queue to its position."""
        return {e.broker_id: e.position for e in self._entries}

    def order(self) -> list[str]:
        """Broker IDs from head to tail."""
        return [e.broker_id for e in self._entries]

    def move_to_tail(self, broker_id: str) -> None:
        """Move a broker to the tail and renumber positions."""
        entry = self.entry(broker_id)
        if entry is None:
            entry = QueueEntry(broker_id=broker_id, position=0)
        else:
            self._entries.remove(entry)
        self._entries.append(entry)
        self._renumber()

    def record_assignment(self, broker_id: str, when: date) -> QueueEntry:
        """Register that a broker was taken from the queue on a date.

        Returns:
            A copy of the entry as it was before (position 0 when the
            broker was not queued), for use with restore().
        """
        before = self.entry(broker_id)
        snapshot = replace(before) if before is not None else QueueEntry(broker_id=broker_id, position=0)
        self.move_to_tail(broker_id)
        entry = self.entry(broker_id)
        entry.times_assigned += 1
        entry.last_assigned = when
        return snapshot

    def restore(self, snapshot: QueueEntry) -> None:
        """Put an entry back where a snapshot says it was.

        A snapshot with position 0 removes the broker from the queue.
        """
        current = self.entry(snapshot.broker_id)
        if current is not None:
            self._entries.remove(current)
        if snapshot.position > 0:
            index = min(snapshot.position - 1, len(self._entries))
            self._entries.insert(index, replace(snapshot))
        self._renumber()

    def sync(self, broker_ids: Iterable[str]) -> None:
        """Align the queue with the configured brokers.

        Brokers no longer configured are dropped; new ones join the tail.
        """
        wanted = list(broker_ids)
        wanted_set = set(wanted)
        self._entries = [e for e in self._entries if e.broker_id in wanted_set]
        for broker_id in wanted:
            if broker_id not in self:
                self._entries.append(QueueEntry(broker_id=broker_id, position=0))
        self._renumber()

    def copy(self) -> "RotationQueue":
        return RotationQueue(self.location_id, entries=self._entries)
