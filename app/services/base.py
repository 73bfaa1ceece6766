import logging
from typing import Optional

from sqlalchemy.orm import Session


class BaseService:
    """
    Common base for DB-backed services.
    Holds the request-scoped session and a logger named after the concrete service.
    """

    def __init__(self, db: Session, actor_id: Optional[str] = None):
        self.db = db
        self.actor_id = actor_id
        self._logger = logging.getLogger(f"app.services.{self.__class__.__name__}")

    def log_info(self, message: str, **extra):
        self._logger.info(message, extra=extra or None)

    def log_warning(self, message: str, **extra):
        self._logger.warning(message, extra=extra or None)

    def commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
