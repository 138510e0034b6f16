"""
In-process document store.
Every operation runs under a single asyncio lock, so a conditional update or
a constrained insert is atomic with respect to other coroutines.
"""
from __future__ import annotations
import asyncio
import copy
import logging
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional

from pulsetime.errors import DuplicateKeyError, StorageError
from pulsetime.storage.base import (
    Document,
    Filter,
    SortSpec,
    Store,
    UniqueConstraint,
    matches,
    register_store,
)

logger = logging.getLogger(__name__)


def _sort_key(value: Any):
    # None sorts first ascending, last descending
    return (value is not None, value)


@register_store("memory")
class MemoryStore(Store):
    """Dict-backed store with partial unique constraints."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = defaultdict(dict)
        self._constraints: Dict[str, List[UniqueConstraint]] = defaultdict(list)
        self._lock = asyncio.Lock()

    def add_constraint(self, collection: str, constraint: UniqueConstraint) -> None:
        if any(c.name == constraint.name for c in self._constraints[collection]):
            return
        self._constraints[collection].append(constraint)

    def _check_constraints(self, collection: str, doc: Document) -> None:
        for constraint in self._constraints[collection]:
            key = constraint.key(doc)
            if key is None:
                continue
            for other in self._collections[collection].values():
                if other["id"] != doc["id"] and constraint.key(other) == key:
                    raise DuplicateKeyError(constraint.name)

    async def create(self, collection: str, doc: Document) -> Document:
        if "id" not in doc:
            raise StorageError("Document has no id")
        async with self._lock:
            docs = self._collections[collection]
            if doc["id"] in docs:
                raise DuplicateKeyError(f"{collection}.id")
            self._check_constraints(collection, doc)
            docs[doc["id"]] = copy.deepcopy(doc)
            return copy.deepcopy(doc)

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        async with self._lock:
            doc = self._collections[collection].get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    async def find_one(self, collection: str, flt: Filter) -> Optional[Document]:
        async with self._lock:
            for doc in self._collections[collection].values():
                if matches(doc, flt):
                    return copy.deepcopy(doc)
        return None

    async def find(
        self,
        collection: str,
        flt: Optional[Filter] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Document]:
        async with self._lock:
            found = [d for d in self._collections[collection].values() if matches(d, flt)]
            for key, direction in reversed(list(sort or [])):
                found.sort(key=lambda d: _sort_key(d.get(key)), reverse=direction < 0)
            end = None if limit is None else skip + limit
            return copy.deepcopy(found[skip:end])

    async def count(self, collection: str, flt: Optional[Filter] = None) -> int:
        async with self._lock:
            return sum(1 for d in self._collections[collection].values() if matches(d, flt))

    async def update(
        self,
        collection: str,
        doc_id: str,
        changes: Mapping[str, Any],
        expect: Optional[Filter] = None,
    ) -> Optional[Document]:
        async with self._lock:
            current = self._collections[collection].get(doc_id)
            if current is None or not matches(current, expect):
                return None
            updated = {**current, **copy.deepcopy(dict(changes)), "id": doc_id}
            self._check_constraints(collection, updated)
            self._collections[collection][doc_id] = updated
            return copy.deepcopy(updated)

    async def increment(
        self, collection: str, doc_id: str, field_name: str, amount: int
    ) -> Optional[Document]:
        async with self._lock:
            current = self._collections[collection].get(doc_id)
            if current is None:
                return None
            current[field_name] = (current.get(field_name) or 0) + amount
            return copy.deepcopy(current)

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            return self._collections[collection].pop(doc_id, None) is not None

    async def delete_many(self, collection: str, flt: Filter) -> int:
        async with self._lock:
            docs = self._collections[collection]
            doomed = [doc_id for doc_id, d in docs.items() if matches(d, flt)]
            for doc_id in doomed:
                del docs[doc_id]
            if doomed:
                logger.debug(f"Deleted {len(doomed)} documents from {collection}")
            return len(doomed)
