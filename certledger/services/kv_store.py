# services/kv_store.py
"""
Key-value store backends.

The certificate core only needs get / set / insert-if-absent / prefix-scan over
JSON values. `SqlKeyValueStore` keeps them in a single SQLAlchemy table;
`MemoryKeyValueStore` is a dict used by tests and throwaway runs.
"""
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError as SqlIntegrityError
from sqlalchemy.exc import SQLAlchemyError

from certledger.errors import StorageError
from certledger.models import KvEntry, db

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Returns the value stored at `key`, or None."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Stores `value` at `key`, replacing any previous value."""

    @abstractmethod
    def add(self, key: str, value: Any) -> bool:
        """Stores `value` only if `key` is free. Returns False when it was taken."""

    @abstractmethod
    def get_by_prefix(self, prefix: str) -> List[Any]:
        """Returns every value whose key starts with `prefix`, ordered by key."""


class MemoryKeyValueStore(KeyValueStore):

    def __init__(self):
        self._data = {}

    def get(self, key):
        return copy.deepcopy(self._data.get(key))

    def set(self, key, value):
        self._data[key] = copy.deepcopy(value)

    def add(self, key, value):
        if key in self._data:
            return False
        self._data[key] = copy.deepcopy(value)
        return True

    def get_by_prefix(self, prefix):
        return [copy.deepcopy(self._data[k]) for k in sorted(self._data) if k.startswith(prefix)]


class SqlKeyValueStore(KeyValueStore):
    """Stores values in the `kv_store` table; needs an application context."""

    def get(self, key):
        try:
            entry = db.session.get(KvEntry, key)
        except SQLAlchemyError as e:
            logger.exception(f"Store read failed for key '{key}'")
            raise StorageError("Failed to read from the record store.") from e
        return copy.deepcopy(entry.value) if entry else None

    def set(self, key, value):
        try:
            entry = db.session.get(KvEntry, key)
            if entry is None:
                db.session.add(KvEntry(key=key, value=copy.deepcopy(value)))
            else:
                entry.value = copy.deepcopy(value)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception(f"Store write failed for key '{key}'")
            raise StorageError("Failed to write to the record store.") from e

    def add(self, key, value):
        try:
            if db.session.get(KvEntry, key) is not None:
                return False
            db.session.add(KvEntry(key=key, value=copy.deepcopy(value)))
            db.session.commit()
            return True
        except SqlIntegrityError:
            db.session.rollback()
            return False
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception(f"Store insert failed for key '{key}'")
            raise StorageError("Failed to write to the record store.") from e

    def get_by_prefix(self, prefix):
        try:
            entries = (KvEntry.query
                       .filter(KvEntry.key.startswith(prefix, autoescape=True))
                       .order_by(KvEntry.key)
                       .all())
        except SQLAlchemyError as e:
            logger.exception(f"Store scan failed for prefix '{prefix}'")
            raise StorageError("Failed to read from the record store.") from e
        return [copy.deepcopy(entry.value) for entry in entries]
