"""
Key/value repository abstraction.

The snapshot cache and the subscription table are both plain keyed stores.
They depend on this interface so a persistent backend can replace the
in-memory one without touching diffing or delivery code.
"""
from abc import ABC, abstractmethod
from typing import Dict, Generic, Hashable, List, Optional, TypeVar

KeyType = TypeVar("KeyType", bound=Hashable)
ValueType = TypeVar("ValueType")


class KeyValueRepository(Generic[KeyType, ValueType], ABC):
    """Get/put/delete by key. Values are replaced whole, never patched."""

    @abstractmethod
    def get(self, key: KeyType) -> Optional[ValueType]:
        """Return the value stored under key, or None."""

    @abstractmethod
    def put(self, key: KeyType, value: ValueType) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    def delete(self, key: KeyType) -> bool:
        """Remove key. Returns False if it was absent."""

    @abstractmethod
    def values(self) -> List[ValueType]:
        """Snapshot of all stored values in insertion order."""

    def __contains__(self, key: KeyType) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self.values())


class InMemoryRepository(KeyValueRepository[KeyType, ValueType]):
    """Dict-backed repository for single-process deployments and tests."""

    def __init__(self) -> None:
        self._items: Dict[KeyType, ValueType] = {}

    def get(self, key: KeyType) -> Optional[ValueType]:
        return self._items.get(key)

    def put(self, key: KeyType, value: ValueType) -> None:
        self._items[key] = value

    def delete(self, key: KeyType) -> bool:
        return self._items.pop(key, None) is not None

    def values(self) -> List[ValueType]:
        return list(self._items.values())

    def __contains__(self, key: KeyType) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)
