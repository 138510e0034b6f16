from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type

Document = Dict[str, Any]
Filter = Mapping[str, Any]
# ("start_time", -1) sorts descending
SortSpec = Sequence[Tuple[str, int]]

_registry: dict[str, Type['Store']] = {}


def register_store(name: str):
    def deco(cls):
        _registry[name] = cls
        return cls
    return deco


def create_store(name: str, **kwargs) -> 'Store':
    if name not in _registry:
        raise ValueError(f"Unknown store backend: {name}")
    return _registry[name](**kwargs)


def list_stores() -> list[str]:
    return sorted(_registry.keys())


@dataclass(frozen=True)
class OneOf:
    """Filter operator: field value is one of ``values``."""
    values: Tuple[Any, ...]

    def __init__(self, values: Iterable[Any]):
        object.__setattr__(self, "values", tuple(values))

    def matches(self, value: Any) -> bool:
        return value in self.values


@dataclass(frozen=True)
class Range:
    """Filter operator: half-open or closed range on a comparable field."""
    gte: Any = None
    gt: Any = None
    lte: Any = None
    lt: Any = None

    def matches(self, value: Any) -> bool:
        if value is None:
            return False
        if self.gte is not None and value < self.gte:
            return False
        if self.gt is not None and value <= self.gt:
            return False
        if self.lte is not None and value > self.lte:
            return False
        if self.lt is not None and value >= self.lt:
            return False
        return True


def matches(doc: Mapping[str, Any], flt: Optional[Filter]) -> bool:
    """Equality, OneOf and Range filters, ANDed together."""
    for key, expected in (flt or {}).items():
        value = doc.get(key)
        if isinstance(expected, (OneOf, Range)):
            if not expected.matches(value):
                return False
        elif value != expected:
            return False
    return True


@dataclass(frozen=True)
class UniqueConstraint:
    """
    Unique over ``fields`` among documents matching ``where``
    (a partial unique index).
    """
    name: str
    fields: Tuple[str, ...]
    where: Dict[str, Any] = field(default_factory=dict)

    def key(self, doc: Mapping[str, Any]) -> Optional[Tuple[Any, ...]]:
        if not matches(doc, self.where):
            return None
        return tuple(doc.get(f) for f in self.fields)


class Store(ABC):
    """
    Generic record store keyed by ``id``, one namespace per collection.

    ``update`` is conditional: when ``expect`` is given the write only
    happens if the stored document matches it, otherwise None is returned.
    Implementations raise DuplicateKeyError on unique-constraint violations
    and StorageError on any other persistence failure.
    """

    @abstractmethod
    def add_constraint(self, collection: str, constraint: UniqueConstraint) -> None:
        ...

    @abstractmethod
    async def create(self, collection: str, doc: Document) -> Document:
        ...

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    async def find_one(self, collection: str, flt: Filter) -> Optional[Document]:
        ...

    @abstractmethod
    async def find(
        self,
        collection: str,
        flt: Optional[Filter] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Document]:
        ...

    @abstractmethod
    async def count(self, collection: str, flt: Optional[Filter] = None) -> int:
        ...

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        changes: Mapping[str, Any],
        expect: Optional[Filter] = None,
    ) -> Optional[Document]:
        ...

    @abstractmethod
    async def increment(
        self, collection: str, doc_id: str, field_name: str, amount: int
    ) -> Optional[Document]:
        ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        ...

    @abstractmethod
    async def delete_many(self, collection: str, flt: Filter) -> int:
        ...
