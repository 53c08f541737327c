"""
In-memory cache of every entity collection, the single read source for
callers. Mutations replace whole collections under a lock so a reader never
sees a half-applied change; listeners are told which collections changed.
"""

import copy
import logging
import threading
from typing import Callable, Iterable, Optional

from . import config
from .codec import get_codec
from .entities import LIST_KINDS

log = logging.getLogger("agency.store")

SETTINGS = "settings"
SERVICES = "services"


def collection_names() -> list:
    return [get_codec(kind).collection for kind in LIST_KINDS]


def empty_data() -> dict:
    """A fresh set of collections, as seen before the first load."""
    data = {name: [] for name in collection_names()}
    data[SERVICES] = copy.deepcopy(config.INITIAL_SERVICES)
    data[SETTINGS] = dict(config.DEFAULT_SETTINGS)
    return data


class CacheStore:
    """Reactive collection-of-collections."""

    def __init__(self):
        self._lock = threading.RLock()
        self._data = empty_data()
        self._listeners: list[Callable] = []
        self.is_loaded = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, name: str):
        with self._lock:
            value = self._data[name]
            return list(value) if isinstance(value, list) else dict(value)

    def __getitem__(self, name: str):
        return self.get(name)

    def find(self, name: str, id_field: str, entity_id) -> Optional[dict]:
        with self._lock:
            for item in self._data[name]:
                if item.get(id_field) == entity_id:
                    return dict(item)
        return None

    def contains(self, name: str, id_field: str, entity_id) -> bool:
        return self.find(name, id_field, entity_id) is not None

    def snapshot(self) -> dict:
        """Deep copy of everything, used by export and by tests."""
        with self._lock:
            return copy.deepcopy(self._data)

    # ------------------------------------------------------------------
    # Writes (each one swaps in a new list)
    # ------------------------------------------------------------------
    def set(self, name: str, value):
        with self._lock:
            self._data[name] = copy.deepcopy(value)
        self._notify([name])

    def append(self, name: str, item: dict):
        with self._lock:
            self._data[name] = self._data[name] + [dict(item)]
        self._notify([name])

    def extend(self, name: str, items: Iterable[dict]):
        with self._lock:
            self._data[name] = self._data[name] + [dict(i) for i in items]
        self._notify([name])

    def prepend(self, name: str, item: dict, limit: int = None):
        with self._lock:
            items = [dict(item)] + self._data[name]
            if limit is not None:
                items = items[:limit]
            self._data[name] = items
        self._notify([name])

    def replace(self, name: str, id_field: str, item: dict) -> bool:
        """Swap the entity with a matching id. Returns False if none matched."""
        entity_id = item.get(id_field)
        with self._lock:
            current = self._data[name]
            if not any(i.get(id_field) == entity_id for i in current):
                return False
            self._data[name] = [dict(item) if i.get(id_field) == entity_id else i
                                for i in current]
        self._notify([name])
        return True

    def remove(self, name: str, predicate: Callable[[dict], bool]) -> list:
        """Drop every entity matching predicate. Returns the removed entities."""
        with self._lock:
            current = self._data[name]
            removed = [i for i in current if predicate(i)]
            if removed:
                self._data[name] = [i for i in current if not predicate(i)]
        if removed:
            self._notify([name])
        return removed

    def apply(self, changes: Callable[[dict], dict]):
        """
        Apply a multi-collection change atomically.
        `changes` receives a shallow copy of the collections and returns
        {collection_name: new_value} for the ones it changed.
        """
        with self._lock:
            updates = changes(dict(self._data)) or {}
            for name, value in updates.items():
                self._data[name] = value
        self._notify(list(updates))

    def load(self, data: dict):
        """Replace every collection at once (initial load / import)."""
        with self._lock:
            fresh = empty_data()
            fresh.update(copy.deepcopy(data))
            self._data = fresh
            self.is_loaded = True
        self._notify(list(self._data))

    def mark_loaded(self):
        self.is_loaded = True
        self._notify([])

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def subscribe(self, listener: Callable[[list], None]) -> Callable[[], None]:
        """Register listener(changed_names). Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self, names: list):
        for listener in list(self._listeners):
            try:
                listener(names)
            except Exception as e:
                log.error("Store listener failed: %s", e)
