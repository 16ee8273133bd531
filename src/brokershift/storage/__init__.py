"""Persistence of configuration and generated schedules."""

from brokershift.storage.json_store import JsonFileRepository
from brokershift.storage.repository import InMemoryRepository, ScheduleRepository

__all__ = [
    "InMemoryRepository",
    "JsonFileRepository",
    "ScheduleRepository",
]
