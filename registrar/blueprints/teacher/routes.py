from flask import jsonify, abort
from flask_login import login_required, current_user
from registrar.blueprints.auth.routes import role_required, payload
from ...extensions import db
from ...errors import NotFound, ValidationFailed
from ...models import TeachingAssignment, EnrollmentLine
from ...services import grading, closure as closures, reports
from ...services.periods import get_active_period
from ..serializers import criterion_json, score_json, final_grade_json, closure_json
from . import bp

def ok(data=None, status=200, **extra):
    body = {"success": True, "data": data}
    body.update(extra)
    return jsonify(body), status

def owned_assignment(aid):
    a = db.session.get(TeachingAssignment, aid)
    if not a:
        raise NotFound(f"Teaching assignment {aid} does not exist")
    if current_user.role == "teacher" and a.teacher_id != current_user.teacher_id:
        abort(403)
    return a

def owned_line(lid):
    line = db.session.get(EnrollmentLine, lid) if lid is not None else None
    if not line:
        raise NotFound(f"Enrollment line {lid} does not exist")
    if current_user.role == "teacher" and (
            line.assignment is None or line.assignment.teacher_id != current_user.teacher_id):
        abort(403)
    return line

@bp.get("/assignments")
@login_required
@role_required("teacher")
def my_assignments():
    period = get_active_period()
    items = []
    if period is not None:
        items = (TeachingAssignment.query
                 .filter_by(teacher_id=current_user.teacher_id, period_id=period.id)
                 .order_by(TeachingAssignment.id).all())
    return ok({
        "period": period.name if period else None,
        "assignments": [{
            "id": a.id, "course_unit": a.course_unit.name, "code": a.course_unit.code,
            "cycle": a.course_unit.cycle, "shift": a.shift.name, "section": a.section,
            "closed": a.closure is not None,
            "pending_final_grades": closures.missing_final_grades(a.id),
        } for a in items],
    })

@bp.get("/assignments/<int:aid>/criteria")
@login_required
@role_required("teacher", "admin")
def criteria(aid):
    owned_assignment(aid)
    return ok([criterion_json(c) for c in grading.list_criteria(aid)])

@bp.put("/assignments/<int:aid>/criteria")
@login_required
@role_required("teacher", "admin")
def replace_criteria(aid):
    owned_assignment(aid)
    items = payload().get("criteria")
    if not isinstance(items, list):
        raise ValidationFailed("Criteria are required")
    saved = grading.replace_criteria(aid, items)
    return ok([criterion_json(c) for c in saved], message="Criteria saved")

@bp.get("/assignments/<int:aid>/roster")
@login_required
@role_required("teacher", "admin")
def roster(aid):
    owned_assignment(aid)
    return ok(reports.assignment_roster(aid))

@bp.get("/lines/<int:lid>/scores")
@login_required
@role_required("teacher", "admin")
def line_scores(lid):
    owned_line(lid)
    line, scores = grading.line_scores(lid)
    final = line.final_grade
    return ok({"scores": [score_json(s) for s in scores],
               "final_grade": final_grade_json(final) if final else None})

@bp.post("/scores")
@login_required
@role_required("teacher", "admin")
def record_score():
    data = payload()
    owned_line(data.get("line_id"))
    s = grading.record_score(data.get("line_id"), data.get("value"),
                             criterion_id=data.get("criterion_id"),
                             annotation=data.get("annotation"),
                             grader_id=current_user.id)
    return ok(score_json(s), message="Score recorded")

@bp.post("/scores/batch")
@login_required
@role_required("teacher", "admin")
def record_scores():
    entries = payload().get("scores")
    if not isinstance(entries, list):
        raise ValidationFailed("Scores are required")
    if not all(isinstance(entry, dict) for entry in entries):
        raise ValidationFailed("Each score entry must be an object")
    for entry in entries:
        if db.session.get(EnrollmentLine, entry.get("line_id") or 0) is not None:
            owned_line(entry["line_id"])
    outcomes = grading.record_scores(entries, grader_id=current_user.id)
    applied = sum(1 for o in outcomes if o.applied)
    return ok([o.to_dict() for o in outcomes],
              message=f"{applied} of {len(outcomes)} scores recorded")

@bp.post("/lines/<int:lid>/finalize")
@login_required
@role_required("teacher", "admin")
def finalize_line(lid):
    owned_line(lid)
    fg = grading.finalize_line(lid)
    return ok(final_grade_json(fg), message="Final grade computed")

@bp.post("/assignments/<int:aid>/close")
@login_required
@role_required("teacher", "admin")
def close_records(aid):
    owned_assignment(aid)
    c = closures.close_records(aid, current_user.id)
    return ok(closure_json(c), 201, message="Grades closed and acta generated")
