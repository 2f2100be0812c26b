import json
import logging
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from config import get_settings
from database import LocalBase, create_db_engine
from models import StoredValue

logger = logging.getLogger(__name__)

TOKEN_KEY = "sh_token"
USER_KEY = "sh_user"


class SessionStore:
    """Bearer credential plus cached profile, shared by every request.

    With an engine the values are written through to the ``stored_values``
    table and reloaded on construction, so a restart keeps the login.
    """

    def __init__(self, engine: Optional[Engine] = None) -> None:
        self.engine = engine
        self._token: Optional[str] = None
        self._user: Optional[dict[str, Any]] = None
        if engine is not None:
            LocalBase.metadata.create_all(engine)
            self._load()

    @classmethod
    def durable(cls, url: Optional[str] = None) -> "SessionStore":
        return cls(create_db_engine(url or get_settings().session_db_url))

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def user(self) -> Optional[dict[str, Any]]:
        if self._token is None:
            return None
        return self._user

    def set_token(self, token: str) -> None:
        self._token = token
        self._write(TOKEN_KEY, token)

    def clear_token(self) -> None:
        self._token = None
        self._write(TOKEN_KEY, None)

    def set_user(self, user: Optional[dict[str, Any]]) -> None:
        if not user:
            self.clear_user()
            return
        self._user = dict(user)
        self._write(USER_KEY, json.dumps(self._user))

    def clear_user(self) -> None:
        self._user = None
        self._write(USER_KEY, None)

    def clear(self) -> None:
        self.clear_token()
        self.clear_user()

    def _load(self) -> None:
        with Session(self.engine) as session:
            rows = session.scalars(
                select(StoredValue).where(StoredValue.key.in_([TOKEN_KEY, USER_KEY]))
            ).all()
        values = {row.key: row.value for row in rows}
        self._token = values.get(TOKEN_KEY) or None
        raw_user = values.get(USER_KEY)
        if raw_user:
            try:
                self._user = json.loads(raw_user)
            except json.JSONDecodeError:
                logger.warning("Discarding unreadable cached profile")
                self._user = None

    def _write(self, key: str, value: Optional[str]) -> None:
        if self.engine is None:
            return
        with Session(self.engine) as session:
            if value is None:
                session.execute(delete(StoredValue).where(StoredValue.key == key))
            else:
                session.merge(StoredValue(key=key, value=value))
            session.commit()
