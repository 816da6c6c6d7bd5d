import logging
from typing import Optional

from sqlalchemy.orm import Session


class BaseRepository:
    def __init__(self, db: Session, logger: Optional[logging.Logger] = None):
        self.db = db
        self.logger = logger or logging.getLogger(self.__class__.__module__)

    @property
    def dialect_name(self) -> str:
        try:
            return str(self.db.get_bind().dialect.name)
        except Exception:
            return ""
