"""
Record Store

Storage-agnostic contract consumed by the services: key-addressable
collections with secondary-index lookup. ``InMemoryRecordStore`` backs
development and tests; production deployments plug in their own store.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from copy import deepcopy
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


# Collection names
PATIENTS = "patients"
TRANSFUSIONS = "transfusions"
ADMISSIONS = "admissions"
TREATMENT_PLANS = "treatment_plans"


class RecordStore(ABC):
    """
    Abstract record store.

    Records are plain JSON-compatible dicts keyed by id within a collection.
    Implementations must return copies, never live references.
    """

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> dict | None:
        """Get a record by id."""
        pass

    @abstractmethod
    async def put(self, collection: str, record_id: str, data: dict) -> None:
        """Insert or replace a record."""
        pass

    @abstractmethod
    async def find(self, collection: str, field: str, value: Any) -> list[dict]:
        """All records whose ``field`` equals ``value``."""
        pass

    @abstractmethod
    async def all(self, collection: str) -> list[dict]:
        """Every record in a collection."""
        pass


class InMemoryRecordStore(RecordStore):
    """In-memory record store for development and tests."""

    def __init__(self):
        self._collections: dict[str, dict[str, dict]] = defaultdict(dict)
        # (collection, field) -> value -> ids
        self._indexes: dict[tuple[str, str], dict[Any, set[str]]] = {}

    async def get(self, collection: str, record_id: str) -> dict | None:
        record = self._collections[collection].get(record_id)
        return deepcopy(record) if record is not None else None

    async def put(self, collection: str, record_id: str, data: dict) -> None:
        previous = self._collections[collection].get(record_id)
        stored = deepcopy(data)
        self._collections[collection][record_id] = stored

        for (indexed_collection, field), index in self._indexes.items():
            if indexed_collection != collection:
                continue
            if previous is not None:
                index.get(previous.get(field), set()).discard(record_id)
            index.setdefault(stored.get(field), set()).add(record_id)

    async def find(self, collection: str, field: str, value: Any) -> list[dict]:
        index = self._indexes.get((collection, field))
        if index is None:
            index = self._build_index(collection, field)
        records = self._collections[collection]
        return [deepcopy(records[record_id]) for record_id in index.get(value, ())]

    async def all(self, collection: str) -> list[dict]:
        return [deepcopy(r) for r in self._collections[collection].values()]

    def _build_index(self, collection: str, field: str) -> dict[Any, set[str]]:
        index: dict[Any, set[str]] = {}
        for record_id, record in self._collections[collection].items():
            index.setdefault(record.get(field), set()).add(record_id)
        self._indexes[(collection, field)] = index
        logger.debug("Built secondary index", collection=collection, field=field)
        return index
