"""Key/value persistence media for the progress store.

The store only needs `get`, `set`, `remove` and `keys` plus a
capacity-exceeded signal. `KeyValueRepository` keeps entries in the
`StoredValue` SQLite table; `InMemoryMedium` keeps them in a dict and is
used by tests and throwaway sessions. Both accept an optional byte budget
and raise `CapacityExceededError` when a write would exceed it.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from sqlalchemy import LargeBinary, cast, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from . import models
from .errors import CapacityExceededError, PersistenceError


class KeyValueMedium(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...


def _utf8_len(text: str) -> int:
    return len(text.encode("utf-8"))


class InMemoryMedium:
    """Dict-backed medium with an optional size budget (bytes of keys + values)."""

    def __init__(self, max_bytes: int = 0):
        self._data: Dict[str, str] = {}
        self.max_bytes = max_bytes

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.max_bytes:
            current = sum(_utf8_len(k) + _utf8_len(v) for k, v in self._data.items() if k != key)
            if current + _utf8_len(key) + _utf8_len(value) > self.max_bytes:
                raise CapacityExceededError(f"store budget of {self.max_bytes} bytes exceeded writing {key}")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class KeyValueRepository:
    """Persist key/value entries in SQLite through SQLModel.

    Each call opens its own short-lived session so the repository can be
    shared across requests and scripts. SQLAlchemy failures are reported as
    `PersistenceError`.
    """
    def __init__(self, engine, max_bytes: int = 0):
        self.engine = engine
        self.max_bytes = max_bytes

    def get(self, key: str) -> Optional[str]:
        """Return the stored value for `key` or `None` if absent."""
        try:
            with Session(self.engine) as session:
                row = session.get(models.StoredValue, key)
                return row.value if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to read {key}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        """Insert or replace `key`, enforcing the byte budget first."""
        try:
            with Session(self.engine) as session:
                if self.max_bytes:
                    # length() of a BLOB counts bytes
                    size = func.length(cast(models.StoredValue.key, LargeBinary)) + func.length(cast(models.StoredValue.value, LargeBinary))
                    stmt = select(func.coalesce(func.sum(size), 0)).where(models.StoredValue.key != key)
                    used = session.exec(stmt).one()
                    if used + _utf8_len(key) + _utf8_len(value) > self.max_bytes:
                        raise CapacityExceededError(f"store budget of {self.max_bytes} bytes exceeded writing {key}")
                row = session.get(models.StoredValue, key)
                if row is None:
                    row = models.StoredValue(key=key, value=value)
                else:
                    row.value = value
                    row.updated_at = datetime.now(timezone.utc)
                session.add(row)
                session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to write {key}: {exc}") from exc

    def remove(self, key: str) -> None:
        """Delete `key` if present."""
        try:
            with Session(self.engine) as session:
                row = session.get(models.StoredValue, key)
                if row is not None:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to remove {key}: {exc}") from exc

    def keys(self) -> List[str]:
        """List all stored keys in key order."""
        try:
            with Session(self.engine) as session:
                stmt = select(models.StoredValue.key).order_by(models.StoredValue.key)
                return list(session.exec(stmt).all())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to list keys: {exc}") from exc
