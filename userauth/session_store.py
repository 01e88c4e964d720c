"""
Server-side session state for the OTP lanes.

The signed session cookie only carries an opaque ``sid``; lane state lives in
the ``sessions`` table. Clearing or replacing state therefore takes effect for
every copy of the cookie the client may have kept.
"""
import logging
import secrets
import time
from typing import Iterator, MutableMapping, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from . import models
from .core.config import settings
from .database import get_db

logger = logging.getLogger(__name__)

SESSION_ID_KEY = "sid"


def _new_session_id() -> str:
    return secrets.token_urlsafe(32)


class ServerSession(MutableMapping[str, object]):
    """
    Mapping view over one row of the ``sessions`` table.

    Every write is committed straight away. The row id is allocated on the
    first write, so read-only requests never create a session.
    """

    def __init__(self, cookie: MutableMapping, db: Session, max_age: Optional[int] = None) -> None:
        self._cookie = cookie
        self._db = db
        self._max_age = max_age or settings.SESSION_MAX_AGE
        self._data = self._load()

    @property
    def session_id(self) -> Optional[str]:
        return self._cookie.get(SESSION_ID_KEY)

    def _load(self) -> dict:
        if not self.session_id:
            return {}
        record = self._db.get(models.SessionRecord, self.session_id)
        if record is None:
            return {}
        if record.expires_at <= int(time.time()):
            logger.debug("Session %s expired", record.id)
            self._db.delete(record)
            self._db.commit()
            return {}
        return dict(record.data or {})

    def _save(self) -> None:
        session_id = self.session_id
        if not session_id:
            session_id = _new_session_id()
            self._cookie[SESSION_ID_KEY] = session_id

        record = self._db.get(models.SessionRecord, session_id)
        if not self._data:
            if record is not None:
                self._db.delete(record)
                self._db.commit()
            return

        if record is None:
            record = models.SessionRecord(id=session_id)
            self._db.add(record)
        record.data = dict(self._data)
        record.expires_at = int(time.time()) + self._max_age
        self._db.commit()

    def __getitem__(self, key: str) -> object:
        return self._data[key]

    def __setitem__(self, key: str, value: object) -> None:
        self._data[key] = value
        self._save()

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._save()

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)


def get_server_session(request: Request, db: Session = Depends(get_db)) -> ServerSession:
    return ServerSession(request.session, db)
