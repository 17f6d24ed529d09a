from ..extensions import db

class Program(db.Model):
    __tablename__ = "program"
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), unique=True)
    name = db.Column(db.String(128), nullable=False)
    cycles = db.Column(db.Integer, nullable=False, default=6)

    plans = db.relationship("StudyPlan", back_populates="program")

class StudyPlan(db.Model):
    __tablename__ = "study_plan"
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), unique=True, nullable=False)
    name = db.Column(db.String(128), nullable=False)
    program_id = db.Column(db.Integer, db.ForeignKey("program.id"), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    program = db.relationship("Program", back_populates="plans")
    course_units = db.relationship("CourseUnit", back_populates="plan")

class Shift(db.Model):
    __tablename__ = "shift"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False)   # Morning / Afternoon / Evening
    start_time = db.Column(db.Time)
    end_time = db.Column(db.Time)

class Period(db.Model):
    __tablename__ = "period"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(16), unique=True, nullable=False)   # e.g. "2026-I"
    year = db.Column(db.Integer, nullable=False)
    term = db.Column(db.Integer, nullable=False, default=1)
    starts_on = db.Column(db.Date)
    ends_on = db.Column(db.Date)
    is_active = db.Column(db.Boolean, nullable=False, default=False)
    __table_args__ = (
        # at most one active period
        db.Index("uq_period_active", "is_active", unique=True,
                 sqlite_where=db.text("is_active = 1"),
                 postgresql_where=db.text("is_active")),
    )

class CourseUnit(db.Model):
    __tablename__ = "course_unit"
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    plan_id = db.Column(db.Integer, db.ForeignKey("study_plan.id"), nullable=False)
    cycle = db.Column(db.Integer, nullable=False)
    credits = db.Column(db.Integer, nullable=False, default=2)
    theory_hours = db.Column(db.Integer, default=0)
    practice_hours = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    __table_args__ = (
        db.UniqueConstraint("plan_id", "code", name="uq_plan_unit_code"),
    )

    plan = db.relationship("StudyPlan", back_populates="course_units")

class TeachingAssignment(db.Model):
    __tablename__ = "teaching_assignment"
    id = db.Column(db.Integer, primary_key=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey("teacher.id"), nullable=False)
    course_unit_id = db.Column(db.Integer, db.ForeignKey("course_unit.id"), nullable=False)
    period_id = db.Column(db.Integer, db.ForeignKey("period.id"), nullable=False)
    shift_id = db.Column(db.Integer, db.ForeignKey("shift.id"), nullable=False)
    section = db.Column(db.String(8), nullable=False, default="A")
    __table_args__ = (
        db.UniqueConstraint("course_unit_id", "period_id", "shift_id", "section",
                            name="uq_assignment_slot"),
    )

    teacher = db.relationship("Teacher", back_populates="assignments")
    course_unit = db.relationship("CourseUnit")
    period = db.relationship("Period")
    shift = db.relationship("Shift")
    criteria = db.relationship("GradingCriterion", back_populates="assignment",
                               order_by="GradingCriterion.order",
                               cascade="all, delete-orphan")
    lines = db.relationship("EnrollmentLine", back_populates="assignment")
    closure = db.relationship("RecordClosure", back_populates="assignment",
                              uselist=False)

class CapacityRule(db.Model):
    __tablename__ = "capacity_rule"
    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey("program.id"), nullable=False)
    cycle = db.Column(db.Integer, nullable=False)
    shift_id = db.Column(db.Integer, db.ForeignKey("shift.id"), nullable=False)
    period_id = db.Column(db.Integer, db.ForeignKey("period.id"))   # NULL = every period
    max_enrolled = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    lock_version = db.Column(db.Integer, nullable=False, default=0)
    __table_args__ = (
        db.CheckConstraint("max_enrolled >= 0", name="ck_max_enrolled"),
    )

    program = db.relationship("Program")
    shift = db.relationship("Shift")
    period = db.relationship("Period")
