"""JSON file repository.

The whole data set lives in a single JSON document:

    {
      "brokers": [...],
      "locations": [...],
      "rotation_queues": {"<location_id>": [...]},
      "saturday_queues": {"<location_id>": [...]},
      "assignments": [...],
      "weekly_stats": [...],
      "reports": [...]
    }

Writes rewrite the document in place (through a temporary file).
"""

import json
import logging
import os
from datetime import date
from pathlib import Path
from typing import Any, Union

from brokershift.domain.accumulator import WeeklyStats
from brokershift.domain.models import Assignment, Broker, Location
from brokershift.domain.queues import RotationQueue
from brokershift.errors import StorageError
from brokershift.storage.repository import InMemoryRepository
from brokershift.storage.serialization import (
    assignment_from_dict,
    assignment_to_dict,
    broker_from_dict,
    broker_to_dict,
    location_from_dict,
    location_to_dict,
    queue_from_dict,
    queue_to_dict,
    stats_from_dict,
    stats_to_dict,
)

logger = logging.getLogger(__name__)


class JsonFileRepository(InMemoryRepository):
    """Repository backed by a JSON file.

    Args:
        path: Data file. A missing file starts an empty data set.
        load: Read the file when it exists.

    Raises:
        StorageError: If the file cannot be read or decoded.
    """

    def __init__(self, path: Union[str, Path], load: bool = True):
        super().__init__()
        self.path = Path(path)
        if not load:
            return
        if self.path.exists():
            self._load()
        else:
            logger.info("%s does not exist, starting with an empty data set", self.path)

    @classmethod
    def create(
        cls,
        path: Union[str, Path],
        brokers: list[Broker],
        locations: list[Location],
    ) -> "JsonFileRepository":
        """Write a fresh data file holding only the configuration."""
        repository = cls(path, load=False)
        repository.brokers = list(brokers)
        repository.locations = list(locations)
        repository.flush()
        return repository

    def _load(self) -> None:
        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e

        try:
            self.brokers = [broker_from_dict(b) for b in document.get("brokers", [])]
            self.locations = [location_from_dict(loc) for loc in document.get("locations", [])]
            self.rotation_queues = {
                loc: queue_from_dict(loc, entries)
                for loc, entries in document.get("rotation_queues", {}).items()
            }
            self.saturday_queues = {
                loc: queue_from_dict(loc, entries)
                for loc, entries in document.get("saturday_queues", {}).items()
            }
            self.assignments = [assignment_from_dict(a) for a in document.get("assignments", [])]
            self.stats = [stats_from_dict(s) for s in document.get("weekly_stats", [])]
            self.reports = list(document.get("reports", []))
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Malformed data in {self.path}: {e!r}") from e

        logger.info(
            "Loaded %d brokers, %d locations, %d assignments from %s",
            len(self.brokers),
            len(self.locations),
            len(self.assignments),
            self.path,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "brokers": [broker_to_dict(b) for b in self.brokers],
            "locations": [location_to_dict(loc) for loc in self.locations],
            "rotation_queues": {
                loc: queue_to_dict(q) for loc, q in sorted(self.rotation_queues.items())
            },
            "saturday_queues": {
                loc: queue_to_dict(q) for loc, q in sorted(self.saturday_queues.items())
            },
            "assignments": [
                assignment_to_dict(a)
                for a in sorted(
                    self.assignments,
                    key=lambda a: (a.day, a.shift.order, a.location_id, a.broker_id),
                )
            ],
            "weekly_stats": [stats_to_dict(s) for s in self.stats],
            "reports": self.reports,
        }

    def flush(self) -> None:
        """Write the data set back to the file."""
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Cannot write {self.path}: {e}") from e

    def save_queues(
        self,
        rotation_queues: dict[str, RotationQueue],
        saturday_queues: dict[str, RotationQueue],
    ) -> None:
        super().save_queues(rotation_queues, saturday_queues)
        self.flush()

    def save_week(
        self,
        week_start: date,
        assignments: list[Assignment],
        stats: list[WeeklyStats],
        report: dict[str, Any],
    ) -> None:
        super().save_week(week_start, assignments, stats, report)
        self.flush()
