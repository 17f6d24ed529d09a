"""Read-side views consumed by rosters, transcripts and certificates."""
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..errors import ValidationFailed
from ..models import (Student, Period, Shift, Program, CourseUnit, TeachingAssignment,
                      Enrollment, EnrollmentLine, Score, FinalGrade, RecordClosure)
from . import get_or_raise
from .periods import get_active_period


def _final_json(final):
    if final is None:
        return None
    return {"value": final.value, "verdict": final.verdict,
            "closed_at": final.closed_at.isoformat() if final.closed_at else None}


def assignment_roster(assignment_id):
    """Active-enrollment lines of an assignment with their scores and final grade."""
    assignment = get_or_raise(TeachingAssignment, assignment_id, "Teaching assignment")
    lines = db.session.execute(
        select(EnrollmentLine)
        .join(Enrollment, EnrollmentLine.enrollment_id == Enrollment.id)
        .where(EnrollmentLine.assignment_id == assignment.id,
               Enrollment.status == "active")
        .options(selectinload(EnrollmentLine.scores).selectinload(Score.criterion),
                 selectinload(EnrollmentLine.final_grade),
                 selectinload(EnrollmentLine.enrollment).selectinload(Enrollment.student))
    ).scalars().all()

    rows = []
    for line in lines:
        student = line.enrollment.student
        rows.append({
            "line_id": line.id,
            "student_id": student.id,
            "student_no": student.student_no,
            "student": student.full_name,
            "enrollment_code": line.enrollment.code,
            "attempt_number": line.attempt_number,
            "status": line.status,
            "scores": {(str(s.criterion_id) if s.criterion_id is not None else "single"): s.value
                       for s in line.scores},
            "final_grade": _final_json(line.final_grade),
        })
    rows.sort(key=lambda r: r["student"])
    return {
        "assignment_id": assignment.id,
        "course_unit": assignment.course_unit.name,
        "section": assignment.section,
        "criteria": [{"id": c.id, "name": c.name, "weight": c.weight, "order": c.order}
                     for c in assignment.criteria],
        "closure": assignment.closure.code if assignment.closure else None,
        "students": rows,
    }


def student_transcript(student_id):
    """Every enrollment of a student with per-line grades and a credit-weighted GPA."""
    student = get_or_raise(Student, student_id, "Student")
    enrollments = db.session.execute(
        select(Enrollment)
        .join(Period, Enrollment.period_id == Period.id)
        .where(Enrollment.student_id == student.id)
        .order_by(Period.year.desc(), Period.term.desc())
        .options(selectinload(Enrollment.lines).selectinload(EnrollmentLine.course_unit),
                 selectinload(Enrollment.lines).selectinload(EnrollmentLine.final_grade))
    ).scalars().all()

    history = []
    weighted = credits = passed = total = 0
    for enrollment in enrollments:
        lines = []
        for line in sorted(enrollment.lines,
                           key=lambda ln: (ln.course_unit.cycle, ln.course_unit.name)):
            unit = line.course_unit
            final = line.final_grade
            lines.append({
                "line_id": line.id,
                "course_unit": unit.name,
                "code": unit.code,
                "cycle": unit.cycle,
                "credits": unit.credits,
                "attempt_number": line.attempt_number,
                "status": line.status,
                "final_grade": _final_json(final),
            })
            if final is not None and enrollment.status != "annulled":
                total += 1
                weighted += final.value * unit.credits
                credits += unit.credits
                if final.verdict == "passed":
                    passed += 1
        history.append({
            "enrollment_id": enrollment.id,
            "code": enrollment.code,
            "period": enrollment.period.name,
            "cycle": enrollment.cycle,
            "condition": enrollment.condition,
            "status": enrollment.status,
            "lines": lines,
        })

    return {
        "student": {"id": student.id, "student_no": student.student_no,
                    "name": student.full_name, "current_cycle": student.current_cycle},
        "history": history,
        "summary": {
            "gpa": round(weighted / credits, 2) if credits else 0,
            "graded_units": total,
            "passed_units": passed,
            "credits_graded": credits,
        },
    }


def pending_closures(period_id=None):
    """Assignments of a period (default: the active one) not yet closed."""
    if period_id is None:
        active = get_active_period()
        if active is None:
            raise ValidationFailed("There is no active period")
        period_id = active.id

    enrolled = (select(func.count(EnrollmentLine.id))
                .join(Enrollment, EnrollmentLine.enrollment_id == Enrollment.id)
                .where(EnrollmentLine.assignment_id == TeachingAssignment.id,
                       Enrollment.status == "active")
                .scalar_subquery())
    finalized = (select(func.count(FinalGrade.id))
                 .join(EnrollmentLine, FinalGrade.line_id == EnrollmentLine.id)
                 .join(Enrollment, EnrollmentLine.enrollment_id == Enrollment.id)
                 .where(EnrollmentLine.assignment_id == TeachingAssignment.id,
                        Enrollment.status == "active")
                 .scalar_subquery())
    closed = select(RecordClosure.assignment_id)
    rows = db.session.execute(
        select(TeachingAssignment, enrolled, finalized)
        .join(CourseUnit, TeachingAssignment.course_unit_id == CourseUnit.id)
        .where(TeachingAssignment.period_id == period_id,
               TeachingAssignment.id.not_in(closed))
        .order_by(CourseUnit.name, TeachingAssignment.section)
    ).all()
    return [{"assignment_id": a.id, "course_unit": a.course_unit.name,
             "section": a.section, "teacher": a.teacher.name,
             "total_students": n, "with_final_grade": f}
            for a, n, f in rows]


def enrollment_statistics(period_id):
    period = get_or_raise(Period, period_id, "Period")

    by_status = db.session.execute(
        select(Enrollment.status, func.count(Enrollment.id))
        .where(Enrollment.period_id == period.id)
        .group_by(Enrollment.status)
    ).all()
    active = (Enrollment.period_id == period.id, Enrollment.status == "active")
    by_cycle = db.session.execute(
        select(Enrollment.cycle, func.count(Enrollment.id))
        .where(*active).group_by(Enrollment.cycle).order_by(Enrollment.cycle)
    ).all()
    by_shift = db.session.execute(
        select(Shift.name, func.count(Enrollment.id))
        .select_from(Enrollment)
        .join(Shift, Enrollment.shift_id == Shift.id)
        .where(*active).group_by(Shift.id, Shift.name)
    ).all()
    by_program = db.session.execute(
        select(Program.name, func.count(Enrollment.id))
        .select_from(Enrollment)
        .join(Student, Enrollment.student_id == Student.id)
        .join(Program, Student.program_id == Program.id)
        .where(*active).group_by(Program.id, Program.name)
    ).all()
    return {
        "period": period.name,
        "by_status": dict(by_status),
        "by_cycle": dict(by_cycle),
        "by_shift": dict(by_shift),
        "by_program": dict(by_program),
    }
