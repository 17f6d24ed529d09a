from flask import request, jsonify
from flask_login import login_required
from registrar.blueprints.auth.routes import role_required, payload
from ...extensions import db
from ...errors import NotFound
from ...models import PreEnrollment, Enrollment
from ...services import periods, enrollment as enrollments, closure as closures, reports
from ..serializers import (pre_enrollment_json, enrollment_json, line_json,
                           closure_json)
from . import bp

def ok(data=None, status=200, **extra):
    body = {"success": True, "data": data}
    body.update(extra)
    return jsonify(body), status

# ---------- Periods ----------
@bp.get("/periods/active")
@login_required
@role_required("admin")
def active_period():
    p = periods.get_active_period()
    return ok({"id": p.id, "name": p.name} if p else None)

@bp.post("/periods/<int:pid>/activate")
@login_required
@role_required("admin")
def activate_period(pid):
    p = periods.activate_period(pid)
    return ok({"id": p.id, "name": p.name, "is_active": p.is_active},
              message=f"Period {p.name} is now active")

# ---------- Pre-enrollments ----------
@bp.get("/pre-enrollments")
@login_required
@role_required("admin")
def pre_enrollments():
    items = enrollments.list_pre_enrollments(request.args.get("period_id", type=int),
                                             request.args.get("status"))
    return ok([dict(pre_enrollment_json(p), student=p.student.full_name,
                    student_no=p.student.student_no, period=p.period.name)
               for p in items])

@bp.post("/pre-enrollments")
@login_required
@role_required("admin")
def create_pre_enrollment():
    data = payload()
    pre = enrollments.create_pre_enrollment(
        data.get("student_id"), data.get("period_id"),
        data.get("requests") or [], notes=data.get("notes"))
    return ok(pre_enrollment_json(pre), 201, message="Pre-enrollment created")

@bp.get("/pre-enrollments/<int:pid>")
@login_required
@role_required("admin")
def pre_enrollment_detail(pid):
    pre = db.session.get(PreEnrollment, pid)
    if not pre:
        raise NotFound(f"Pre-enrollment {pid} does not exist")
    return ok(pre_enrollment_json(pre))

@bp.patch("/pre-enrollments/<int:pid>/status")
@login_required
@role_required("admin")
def pre_enrollment_status(pid):
    data = payload()
    pre = enrollments.set_pre_enrollment_status(pid, data.get("status"), data.get("notes"))
    return ok(pre_enrollment_json(pre), message=f"Pre-enrollment {pre.status}")

# ---------- Enrollments ----------
@bp.get("/enrollments")
@login_required
@role_required("admin")
def enrollment_list():
    items = enrollments.list_enrollments(
        period_id=request.args.get("period_id", type=int),
        program_id=request.args.get("program_id", type=int),
        status=request.args.get("status"),
        search=request.args.get("search"))
    return ok([dict(enrollment_json(e, with_lines=False), student=e.student.full_name,
                    student_no=e.student.student_no, period=e.period.name)
               for e in items])

@bp.post("/enrollments")
@login_required
@role_required("admin")
def create_enrollment():
    data = payload()
    e = enrollments.create_enrollment(
        data.get("student_id"), data.get("period_id"), data.get("cycle"),
        shift_id=data.get("shift_id"), condition=data.get("condition"),
        lines=data.get("lines") or [], notes=data.get("notes"))
    return ok(enrollment_json(e), 201, message="Enrollment created")

@bp.post("/enrollments/from-pre-enrollment/<int:pid>")
@login_required
@role_required("admin")
def promote_pre_enrollment(pid):
    data = payload()
    e = enrollments.promote_pre_enrollment(
        pid, data.get("cycle"), condition=data.get("condition"), notes=data.get("notes"))
    return ok(enrollment_json(e), 201, message="Enrollment created from pre-enrollment")

@bp.get("/enrollments/<int:eid>")
@login_required
@role_required("admin")
def enrollment_detail(eid):
    e = db.session.get(Enrollment, eid)
    if not e:
        raise NotFound(f"Enrollment {eid} does not exist")
    return ok(enrollment_json(e))

@bp.patch("/enrollments/<int:eid>/status")
@login_required
@role_required("admin")
def enrollment_status(eid):
    data = payload()
    e = enrollments.update_enrollment_status(eid, data.get("status"), data.get("notes"))
    return ok(enrollment_json(e, with_lines=False),
              message=f"Enrollment status set to {e.status}")

@bp.get("/enrollments/statistics")
@login_required
@role_required("admin")
def enrollment_statistics():
    return ok(reports.enrollment_statistics(request.args.get("period_id", type=int)))

@bp.get("/students/<int:sid>/available-units")
@login_required
@role_required("admin")
def available_units(sid):
    items = enrollments.available_course_units(sid)
    return ok([{"course_unit_id": i["course_unit"].id, "code": i["course_unit"].code,
                "name": i["course_unit"].name, "cycle": i["course_unit"].cycle,
                "credits": i["course_unit"].credits, "attempts": i["attempts"],
                "next_attempt": i["next_attempt"]} for i in items])

@bp.get("/students/<int:sid>/transcript")
@login_required
@role_required("admin")
def student_transcript(sid):
    return ok(reports.student_transcript(sid))

# ---------- Actas ----------
@bp.get("/actas")
@login_required
@role_required("admin")
def actas():
    items = closures.list_closures(request.args.get("period_id", type=int),
                                   request.args.get("teacher_id", type=int))
    return ok([closure_json(c) for c in items])

@bp.get("/actas/<int:cid>")
@login_required
@role_required("admin")
def acta_detail(cid):
    c, lines = closures.closure_detail(cid)
    data = closure_json(c)
    data["students"] = [dict(line_json(ln), student=ln.enrollment.student.full_name,
                             student_no=ln.enrollment.student.student_no)
                        for ln in lines]
    return ok(data)

@bp.get("/reports/pending-closures")
@login_required
@role_required("admin")
def pending_closures():
    return ok(reports.pending_closures(request.args.get("period_id", type=int)))
