from datetime import datetime, timezone
from ..extensions import db

PRE_ENROLLMENT_STATUSES = ("pending", "approved", "rejected")
ENROLLMENT_STATUSES = ("active", "annulled", "finalized")
ENROLLMENT_CONDITIONS = ("regular", "irregular", "repeat")
LINE_STATUSES = ("in-progress", "passed", "failed")

def utcnow():
    return datetime.now(timezone.utc)

class PreEnrollment(db.Model):
    __tablename__ = "pre_enrollment"
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("student.id"), nullable=False)
    period_id = db.Column(db.Integer, db.ForeignKey("period.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending")
    notes = db.Column(db.String(255))
    requested_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, onupdate=utcnow)
    __table_args__ = (
        db.UniqueConstraint("student_id", "period_id", name="uq_pre_student_period"),
    )

    student = db.relationship("Student")
    period = db.relationship("Period")
    requests = db.relationship("PreEnrollmentLine", back_populates="pre_enrollment",
                               order_by="PreEnrollmentLine.id",
                               cascade="all, delete-orphan")

class PreEnrollmentLine(db.Model):
    __tablename__ = "pre_enrollment_line"
    id = db.Column(db.Integer, primary_key=True)
    pre_enrollment_id = db.Column(db.Integer, db.ForeignKey("pre_enrollment.id"), nullable=False)
    course_unit_id = db.Column(db.Integer, db.ForeignKey("course_unit.id"), nullable=False)
    shift_id = db.Column(db.Integer, db.ForeignKey("shift.id"), nullable=False)
    section = db.Column(db.String(8), nullable=False, default="A")

    pre_enrollment = db.relationship("PreEnrollment", back_populates="requests")
    course_unit = db.relationship("CourseUnit")

class Enrollment(db.Model):
    __tablename__ = "enrollment"
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("student.id"), nullable=False)
    period_id = db.Column(db.Integer, db.ForeignKey("period.id"), nullable=False)
    code = db.Column(db.String(48), unique=True, nullable=False)   # MAT-2026-I-00001
    cycle = db.Column(db.Integer, nullable=False)
    shift_id = db.Column(db.Integer, db.ForeignKey("shift.id"))
    condition = db.Column(db.String(16), nullable=False, default="regular")
    status = db.Column(db.String(16), nullable=False, default="active")
    notes = db.Column(db.String(255))
    enrolled_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, onupdate=utcnow)
    __table_args__ = (
        db.UniqueConstraint("student_id", "period_id", name="uq_student_period"),
    )

    student = db.relationship("Student", back_populates="enrollments")
    period = db.relationship("Period")
    shift = db.relationship("Shift")
    lines = db.relationship("EnrollmentLine", back_populates="enrollment",
                            order_by="EnrollmentLine.id",
                            cascade="all, delete-orphan")

class EnrollmentLine(db.Model):
    __tablename__ = "enrollment_line"
    id = db.Column(db.Integer, primary_key=True)
    enrollment_id = db.Column(db.Integer, db.ForeignKey("enrollment.id"), nullable=False)
    course_unit_id = db.Column(db.Integer, db.ForeignKey("course_unit.id"), nullable=False)
    assignment_id = db.Column(db.Integer, db.ForeignKey("teaching_assignment.id"))
    attempt_number = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(db.String(16), nullable=False, default="in-progress")
    updated_at = db.Column(db.DateTime, onupdate=utcnow)
    __table_args__ = (
        db.CheckConstraint("attempt_number >= 1", name="ck_attempt_positive"),
    )

    enrollment = db.relationship("Enrollment", back_populates="lines")
    course_unit = db.relationship("CourseUnit")
    assignment = db.relationship("TeachingAssignment", back_populates="lines")
    scores = db.relationship("Score", back_populates="line",
                             cascade="all, delete-orphan")
    final_grade = db.relationship("FinalGrade", back_populates="line", uselist=False,
                                  cascade="all, delete-orphan")
