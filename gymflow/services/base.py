import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from gymflow.exceptions import GymFlowError, StoreUnavailable

logger = logging.getLogger(__name__)


class BaseService:
    """Common session handling for services backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def _rollback(self) -> None:
        try:
            self.db.rollback()
        except Exception:
            logger.exception("Rollback failed")

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        """All-or-nothing block: commits on success, rolls back on any error.

        Engine errors and integrity conflicts propagate unchanged; other
        store failures surface as StoreUnavailable.
        """
        try:
            yield
            self.db.commit()
        except (GymFlowError, IntegrityError):
            self._rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback()
            logger.exception("Store error")
            raise StoreUnavailable(details={"reason": e.__class__.__name__}) from e
        except Exception:
            self._rollback()
            raise

    @contextmanager
    def _reading(self) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            self._rollback()
            logger.exception("Store error on read")
            raise StoreUnavailable(details={"reason": e.__class__.__name__}) from e
