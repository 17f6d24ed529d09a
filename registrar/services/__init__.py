"""Enrollment and grade-finalization services.

Each public operation runs inside :func:`unit_of_work`, so a failure
leaves no partial writes behind.
"""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import RegistrarError, NotFound, StorageError

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work():
    try:
        yield db.session
        db.session.commit()
    except RegistrarError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("storage failure, transaction rolled back")
        raise StorageError("The operation could not be saved") from exc
    except Exception:
        db.session.rollback()
        raise


def get_or_raise(model, ident, label=None):
    obj = db.session.get(model, ident) if ident is not None else None
    if obj is None:
        raise NotFound(f"{label or model.__name__} {ident} does not exist")
    return obj
