"""Record closure (acta): sealing the grade roster of a teaching assignment."""
import logging

from sqlalchemy import select, update, func

from ..extensions import db
from ..errors import IncompleteGrades, RecordsSealed
from ..models import (TeachingAssignment, Enrollment, EnrollmentLine, FinalGrade,
                      RecordClosure)
from ..models.enrollment import utcnow
from . import unit_of_work, get_or_raise
from .sequences import next_acta_code

logger = logging.getLogger(__name__)


def covered_lines(assignment_id):
    """Lines that belong on the roster: enrollment is active."""
    return (select(EnrollmentLine.id)
            .join(Enrollment, EnrollmentLine.enrollment_id == Enrollment.id)
            .where(EnrollmentLine.assignment_id == assignment_id,
                   Enrollment.status == "active"))


def close_records(assignment_id, actor_id):
    """Close the grade roster of an assignment and return its acta.

    Every active-enrollment line must already have a final grade. There is
    no reopen: a closed assignment rejects further closures.
    """
    with unit_of_work():
        assignment = get_or_raise(TeachingAssignment, assignment_id, "Teaching assignment")
        if assignment.closure is not None:
            logger.warning("assignment %s: second closure rejected", assignment.id)
            raise RecordsSealed(
                f"Grades for this course were already closed in {assignment.closure.code}")
        missing = missing_final_grades(assignment.id)
        if missing:
            raise IncompleteGrades(missing)

        now = utcnow()
        closure = RecordClosure(assignment_id=assignment.id,
                                code=next_acta_code(now.year),
                                status="closed", closed_at=now, closed_by_id=actor_id)
        db.session.add(closure)
        stamped = db.session.execute(
            update(FinalGrade)
            .where(FinalGrade.line_id.in_(covered_lines(assignment.id)))
            .values(closed_at=now, closed_by_id=actor_id)
            .execution_options(synchronize_session="fetch")
        ).rowcount
    logger.info("assignment %s closed as %s (%d grades sealed)",
                assignment_id, closure.code, stamped)
    return closure


def missing_final_grades(assignment_id):
    return db.session.execute(
        select(func.count(EnrollmentLine.id))
        .join(Enrollment, EnrollmentLine.enrollment_id == Enrollment.id)
        .outerjoin(FinalGrade, FinalGrade.line_id == EnrollmentLine.id)
        .where(EnrollmentLine.assignment_id == assignment_id,
               Enrollment.status == "active",
               FinalGrade.id.is_(None))
    ).scalar_one()


def closure_for(assignment_id):
    return db.session.execute(
        select(RecordClosure).where(RecordClosure.assignment_id == assignment_id)
    ).scalar_one_or_none()


def list_closures(period_id=None, teacher_id=None):
    q = select(RecordClosure).join(TeachingAssignment)
    if period_id:
        q = q.where(TeachingAssignment.period_id == period_id)
    if teacher_id:
        q = q.where(TeachingAssignment.teacher_id == teacher_id)
    return db.session.execute(q.order_by(RecordClosure.closed_at.desc())).scalars().all()


def closure_detail(closure_id):
    """The acta with every non-annulled line of its assignment."""
    closure = get_or_raise(RecordClosure, closure_id, "Acta")
    lines = db.session.execute(
        select(EnrollmentLine)
        .join(Enrollment, EnrollmentLine.enrollment_id == Enrollment.id)
        .where(EnrollmentLine.assignment_id == closure.assignment_id,
               Enrollment.status != "annulled")
    ).scalars().all()
    lines.sort(key=lambda ln: ln.enrollment.student.full_name)
    return closure, lines
