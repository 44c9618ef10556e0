# Durable key/value storage for console state that must survive restarts.
# Stands in for browser local storage: the session subject and the optional bearer token.
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from .db import SessionLocal
from . import models

logger = logging.getLogger("aptconsole.storage")

USER_KEY = "user"
TOKEN_KEY = "token"


class DurableStorage:
    """
    Small wrapper around the client_storage table.

    Values are kept in memory once read or written and every write goes through to
    the table, so hot reads (the bearer token on each upstream call) never touch the
    database. One DurableStorage owns its keys; other writers to the same table are
    only seen by a new instance.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory
        # key -> value, None meaning "known to be absent"
        self._memo: Dict[str, Optional[str]] = {}

    def get_item(self, key: str) -> Optional[str]:
        if key in self._memo:
            return self._memo[key]
        db = self._session_factory()
        try:
            row = db.get(models.StorageItem, key)
            value = row.value if row else None
        finally:
            db.close()
        self._memo[key] = value
        return value

    def set_item(self, key: str, value: str) -> None:
        db = self._session_factory()
        try:
            row = db.get(models.StorageItem, key)
            if row is None:
                db.add(models.StorageItem(key=key, value=value))
            else:
                row.value = value
                db.add(row)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        self._memo[key] = value

    def remove_item(self, key: str) -> bool:
        """Delete a key; returns True if something was removed."""
        if key in self._memo and self._memo[key] is None:
            return False
        db = self._session_factory()
        try:
            row = db.get(models.StorageItem, key)
            if row is None:
                removed = False
            else:
                db.delete(row)
                db.commit()
                removed = True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        self._memo[key] = None
        return removed

    def get_json(self, key: str) -> Any:
        """
        Decode a JSON value. Undecodable values are dropped from storage and
        reported as missing.
        """
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("storage.corrupt_value key=%s; removing", key)
            self.remove_item(key)
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, default=str))
