"""Pre-enrollment ledger and enrollment allocation."""
import logging

from flask import current_app
from sqlalchemy import select, update, func, or_, case
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import (ValidationFailed, DuplicateEnrollment, DuplicatePreEnrollment,
                      CapacityExceeded, NotApproved)
from ..models import (Student, Period, CourseUnit, TeachingAssignment, CapacityRule,
                      PreEnrollment, PreEnrollmentLine, Enrollment, EnrollmentLine)
from ..models.enrollment import (PRE_ENROLLMENT_STATUSES, ENROLLMENT_STATUSES,
                                 ENROLLMENT_CONDITIONS)
from . import unit_of_work, get_or_raise
from .sequences import next_enrollment_code

logger = logging.getLogger(__name__)


# ---------- Pre-enrollments ----------

def create_pre_enrollment(student_id, period_id, requests, notes=None):
    """Record a student's requested (course unit, shift) pairs for a period."""
    if not isinstance(requests, list) or not requests:
        raise ValidationFailed("At least one course unit must be requested")
    if not all(isinstance(req, dict) for req in requests):
        raise ValidationFailed("Every request must be an object with a course_unit_id")
    with unit_of_work():
        student = get_or_raise(Student, student_id, "Student")
        period = get_or_raise(Period, period_id, "Period")
        exists = db.session.execute(
            select(PreEnrollment.id).filter_by(student_id=student.id, period_id=period.id)
        ).first()
        if exists:
            raise DuplicatePreEnrollment(
                "A pre-enrollment already exists for this student in the selected period")

        pre = PreEnrollment(student_id=student.id, period_id=period.id,
                            status="pending", notes=notes)
        for req in requests:
            if not req.get("shift_id"):
                raise ValidationFailed("Every requested course unit needs a shift")
            unit = get_or_raise(CourseUnit, req.get("course_unit_id"), "Course unit")
            pre.requests.append(PreEnrollmentLine(
                course_unit_id=unit.id, shift_id=req["shift_id"],
                section=req.get("section") or "A"))
        db.session.add(pre)
        try:
            db.session.flush()
        except IntegrityError:
            raise DuplicatePreEnrollment(
                "A pre-enrollment already exists for this student in the selected period")
    logger.info("pre-enrollment %s created for student %s", pre.id, student_id)
    return pre


def set_pre_enrollment_status(pre_enrollment_id, status, notes=None):
    if status not in PRE_ENROLLMENT_STATUSES:
        raise ValidationFailed(f"Invalid pre-enrollment status: {status}")
    with unit_of_work():
        pre = get_or_raise(PreEnrollment, pre_enrollment_id, "Pre-enrollment")
        pre.status = status
        if notes is not None:
            pre.notes = notes
    logger.info("pre-enrollment %s set to %s", pre_enrollment_id, status)
    return pre



def list_pre_enrollments(period_id=None, status=None):
    """Pre-enrollments, newest first, optionally filtered by period and status."""
    q = select(PreEnrollment)
    if period_id:
        q = q.where(PreEnrollment.period_id == period_id)
    if status:
        q = q.where(PreEnrollment.status == status)
    q = q.order_by(PreEnrollment.requested_at.desc(), PreEnrollment.id.desc())
    return db.session.execute(q).scalars().all()


# ---------- Enrollments ----------

def _matching_rule(program_id, cycle, shift_id, period_id):
    # period-scoped rules win over rules that apply to every period
    return db.session.execute(
        select(CapacityRule)
        .where(CapacityRule.program_id == program_id,
               CapacityRule.cycle == cycle,
               CapacityRule.shift_id == shift_id,
               CapacityRule.is_active.is_(True),
               or_(CapacityRule.period_id == period_id, CapacityRule.period_id.is_(None)))
        .order_by(CapacityRule.period_id.is_(None), CapacityRule.id)
    ).scalars().first()


def _check_capacity(student, period_id, cycle, shift_id):
    if student.program_id is None or shift_id is None:
        return
    rule = _matching_rule(student.program_id, cycle, shift_id, period_id)
    if rule is None:
        return
    # serialize the bucket: the version bump holds the rule row until commit
    db.session.execute(
        update(CapacityRule)
        .where(CapacityRule.id == rule.id)
        .values(lock_version=CapacityRule.lock_version + 1)
    )
    enrolled = db.session.execute(
        select(func.count(Enrollment.id))
        .join(Student, Enrollment.student_id == Student.id)
        .where(Enrollment.period_id == period_id,
               Enrollment.cycle == cycle,
               Enrollment.shift_id == shift_id,
               Enrollment.status == "active",
               Student.program_id == student.program_id)
    ).scalar_one()
    if enrolled >= rule.max_enrolled:
        logger.warning("capacity rule %s full (%s/%s)", rule.id, enrolled, rule.max_enrolled)
        raise CapacityExceeded(
            f"The limit of {rule.max_enrolled} enrolled students for this cycle and shift has been reached",
            limit=rule.max_enrolled)


def _resolve_assignment(course_unit_id, period_id, shift_id, section=None):
    if shift_id is None:
        return None
    q = (select(TeachingAssignment)
         .where(TeachingAssignment.course_unit_id == course_unit_id,
                TeachingAssignment.period_id == period_id,
                TeachingAssignment.shift_id == shift_id))
    if section:
        q = q.order_by((TeachingAssignment.section == section).desc(), TeachingAssignment.id)
    else:
        q = q.order_by(TeachingAssignment.id)
    return db.session.execute(q).scalars().first()


def _ensure_not_enrolled(student_id, period_id):
    exists = db.session.execute(
        select(Enrollment.id).filter_by(student_id=student_id, period_id=period_id)
    ).first()
    if exists:
        raise DuplicateEnrollment(
            "An enrollment already exists for this student in the selected period")


def _as_int(value, message):
    # form posts carry numbers as strings
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationFailed(message)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(message)


def _validate_header(cycle, condition):
    cycle = _as_int(cycle, "Cycle must be a positive integer")
    if cycle < 1:
        raise ValidationFailed("Cycle must be a positive integer")
    if condition not in ENROLLMENT_CONDITIONS:
        raise ValidationFailed(f"Invalid enrollment condition: {condition}")
    return cycle


def _clean_lines(lines):
    """Validate requested lines into ``(course_unit_id, attempt_number)`` pairs."""
    if not isinstance(lines, list) or not lines:
        raise ValidationFailed("At least one course unit is required")
    cleaned = []
    for item in lines:
        if not isinstance(item, dict):
            raise ValidationFailed("Every line must be an object with a course_unit_id")
        attempt = item.get("attempt_number")
        attempt = 1 if attempt is None else _as_int(
            attempt, "Attempt number must be at least 1")
        if attempt < 1:
            raise ValidationFailed("Attempt number must be at least 1")
        cleaned.append((item.get("course_unit_id"), attempt))
    return cleaned


def _insert(enrollment):
    db.session.add(enrollment)
    try:
        db.session.flush()
    except IntegrityError:
        # lost a race against another request for the same (student, period)
        raise DuplicateEnrollment(
            "An enrollment already exists for this student in the selected period")


def create_enrollment(student_id, period_id, cycle, shift_id=None, condition=None,
                      lines=None, notes=None):
    """Create the official enrollment of a student for a period.

    ``lines`` is a list of ``{"course_unit_id": ..., "attempt_number": ...}``
    dicts. Lines whose course unit has no teaching assignment for the
    period and shift are created without one.
    """
    condition = condition or "regular"
    cycle = _validate_header(cycle, condition)
    requested = _clean_lines(lines)

    with unit_of_work():
        student = get_or_raise(Student, student_id, "Student")
        period = get_or_raise(Period, period_id, "Period")
        shift_id = shift_id or student.shift_id
        _ensure_not_enrolled(student.id, period.id)
        _check_capacity(student, period.id, cycle, shift_id)

        enrollment = Enrollment(student_id=student.id, period_id=period.id,
                                code=next_enrollment_code(period), cycle=cycle,
                                shift_id=shift_id, condition=condition,
                                status="active", notes=notes)
        for course_unit_id, attempt in requested:
            unit = get_or_raise(CourseUnit, course_unit_id, "Course unit")
            assignment = _resolve_assignment(unit.id, period.id, shift_id)
            enrollment.lines.append(EnrollmentLine(
                course_unit_id=unit.id,
                assignment_id=assignment.id if assignment else None,
                attempt_number=attempt))
        _insert(enrollment)
        student.current_cycle = cycle

    logger.info("enrollment %s created for student %s", enrollment.code, student_id)
    return enrollment


def promote_pre_enrollment(pre_enrollment_id, cycle, condition=None, notes=None):
    """Turn an approved pre-enrollment into an official enrollment."""
    condition = condition or "regular"
    cycle = _validate_header(cycle, condition)

    with unit_of_work():
        pre = get_or_raise(PreEnrollment, pre_enrollment_id, "Pre-enrollment")
        if pre.status != "approved":
            raise NotApproved(
                f"Pre-enrollment {pre.id} is {pre.status}; only approved pre-enrollments can be enrolled")
        student = pre.student
        period = pre.period
        _ensure_not_enrolled(student.id, period.id)

        shift_id = pre.requests[0].shift_id if pre.requests else student.shift_id
        if current_app.config.get("ENFORCE_CAPACITY_ON_PROMOTION"):
            _check_capacity(student, period.id, cycle, shift_id)

        enrollment = Enrollment(student_id=student.id, period_id=period.id,
                                code=next_enrollment_code(period), cycle=cycle,
                                shift_id=shift_id, condition=condition,
                                status="active", notes=notes)
        for req in pre.requests:
            assignment = _resolve_assignment(req.course_unit_id, period.id,
                                             req.shift_id, req.section)
            enrollment.lines.append(EnrollmentLine(
                course_unit_id=req.course_unit_id,
                assignment_id=assignment.id if assignment else None,
                attempt_number=1))
        _insert(enrollment)
        student.current_cycle = cycle

    logger.info("enrollment %s created from pre-enrollment %s", enrollment.code, pre_enrollment_id)
    return enrollment


def update_enrollment_status(enrollment_id, status, notes=None):
    """Set an enrollment's status. Any transition is allowed (administrative override)."""
    if status not in ENROLLMENT_STATUSES:
        raise ValidationFailed(f"Invalid enrollment status: {status}")
    with unit_of_work():
        enrollment = get_or_raise(Enrollment, enrollment_id, "Enrollment")
        previous = enrollment.status
        enrollment.status = status
        if notes is not None:
            enrollment.notes = notes
    if previous == "finalized" and status == "active":
        logger.warning("enrollment %s reactivated after being finalized", enrollment.code)
    else:
        logger.info("enrollment %s: %s -> %s", enrollment.code, previous, status)
    return enrollment


def list_enrollments(period_id=None, program_id=None, status=None, search=None):
    """Enrollments, newest first.

    ``search`` matches the student's names or student number.
    """
    q = select(Enrollment).join(Student, Enrollment.student_id == Student.id)
    if period_id:
        q = q.where(Enrollment.period_id == period_id)
    if program_id:
        q = q.where(Student.program_id == program_id)
    if status:
        q = q.where(Enrollment.status == status)
    if search:
        term = f"%{search.strip()}%"
        q = q.where(or_(Student.first_names.ilike(term),
                        Student.last_name.ilike(term),
                        Student.second_last_name.ilike(term),
                        Student.student_no.ilike(term)))
    q = q.order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())
    return db.session.execute(q).scalars().all()

def available_course_units(student_id):
    """Course units of the student's plan not yet passed, with prior attempts."""
    student = get_or_raise(Student, student_id, "Student")
    if student.plan_id is None:
        return []
    attempts = (select(EnrollmentLine.course_unit_id,
                       func.count(EnrollmentLine.id).label("attempts"),
                       func.sum(case((EnrollmentLine.status == "passed", 1), else_=0))
                       .label("passed"))
                .join(Enrollment, EnrollmentLine.enrollment_id == Enrollment.id)
                .where(Enrollment.student_id == student.id)
                .group_by(EnrollmentLine.course_unit_id)
                .subquery())
    rows = db.session.execute(
        select(CourseUnit, func.coalesce(attempts.c.attempts, 0),
               func.coalesce(attempts.c.passed, 0))
        .outerjoin(attempts, attempts.c.course_unit_id == CourseUnit.id)
        .where(CourseUnit.plan_id == student.plan_id, CourseUnit.is_active.is_(True))
        .order_by(CourseUnit.cycle, CourseUnit.name)
    ).all()
    return [{"course_unit": unit, "attempts": n, "next_attempt": n + 1}
            for unit, n, passed in rows if not passed]
