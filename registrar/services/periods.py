import logging

from sqlalchemy import select, update

from ..extensions import db
from ..models import Period
from . import unit_of_work, get_or_raise

logger = logging.getLogger(__name__)


def activate_period(period_id):
    """Make ``period_id`` the only active period."""
    with unit_of_work():
        period = get_or_raise(Period, period_id, "Period")
        db.session.execute(
            update(Period).where(Period.is_active.is_(True)).values(is_active=False)
        )
        db.session.execute(
            update(Period).where(Period.id == period.id).values(is_active=True)
        )
    db.session.refresh(period)
    logger.info("period %s activated", period.name)
    return period


def get_active_period():
    return db.session.execute(
        select(Period).where(Period.is_active.is_(True))
    ).scalar_one_or_none()
