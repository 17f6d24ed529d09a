from flask import jsonify
from flask_login import login_required, current_user
from registrar.blueprints.auth.routes import role_required
from ...models import Enrollment
from ...services import reports
from ..serializers import enrollment_json
from . import bp

def get_current_student():
    return current_user.student

@bp.get("/me/enrollments")
@login_required
@role_required("student")
def my_enrollments():
    stu = get_current_student()
    items = (Enrollment.query.filter_by(student_id=stu.id)
             .order_by(Enrollment.enrolled_at.desc()).all())
    return jsonify({"success": True, "data": [enrollment_json(e) for e in items]})

@bp.get("/me/transcript")
@login_required
@role_required("student")
def my_transcript():
    stu = get_current_student()
    return jsonify({"success": True, "data": reports.student_transcript(stu.id)})
