"""Atomic display-code counters.

Counters live in one row per namespace and are advanced with a single
``UPDATE ... SET last_value = last_value + 1``, which takes the row lock
for the rest of the surrounding transaction.
"""
from flask import current_app
from sqlalchemy import select, update, func

from ..extensions import db
from ..models import CodeSequence, Enrollment, RecordClosure


def next_value(namespace, seed=0):
    """Advance ``namespace`` and return the new value.

    A missing counter starts after ``seed`` so codes keep counting from
    rows that predate it.
    """
    bump = (update(CodeSequence)
            .where(CodeSequence.namespace == namespace)
            .values(last_value=CodeSequence.last_value + 1))
    if db.session.execute(bump).rowcount == 0:
        db.session.add(CodeSequence(namespace=namespace, last_value=seed + 1))
        db.session.flush()
    return db.session.execute(
        select(CodeSequence.last_value).where(CodeSequence.namespace == namespace)
    ).scalar_one()


def _pad(n):
    return str(n).zfill(current_app.config.get("CODE_PAD", 5))


def next_enrollment_code(period):
    existing = db.session.execute(
        select(func.count(Enrollment.id)).where(Enrollment.period_id == period.id)
    ).scalar_one()
    seq = next_value(f"enrollment:{period.id}", seed=existing)
    return f"MAT-{period.name}-{_pad(seq)}"


def next_acta_code(year):
    existing = db.session.execute(select(func.count(RecordClosure.id))).scalar_one()
    seq = next_value("acta", seed=existing)
    return f"ACTA-{year}-{_pad(seq)}"
