from ..extensions import db
from .enrollment import utcnow

class GradingCriterion(db.Model):
    __tablename__ = "grading_criterion"
    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey("teaching_assignment.id"), nullable=False)
    name = db.Column(db.String(64), nullable=False)       # Midterm / Final / Project
    weight = db.Column(db.Float, nullable=False, default=1.0)
    order = db.Column(db.Integer, nullable=False, default=1)
    __table_args__ = (
        db.CheckConstraint("weight > 0", name="ck_criterion_weight"),
    )

    assignment = db.relationship("TeachingAssignment", back_populates="criteria")
    scores = db.relationship("Score", back_populates="criterion",
                             cascade="all, delete-orphan")

class Score(db.Model):
    __tablename__ = "score"
    id = db.Column(db.Integer, primary_key=True)
    line_id = db.Column(db.Integer, db.ForeignKey("enrollment_line.id"), nullable=False)
    criterion_id = db.Column(db.Integer, db.ForeignKey("grading_criterion.id"))   # NULL = single grade
    value = db.Column(db.Float, nullable=False)
    annotation = db.Column(db.String(255))
    recorded_by_id = db.Column(db.Integer, db.ForeignKey("user.id"))
    recorded_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, onupdate=utcnow)
    __table_args__ = (
        db.UniqueConstraint("line_id", "criterion_id", name="uq_line_criterion"),
        db.Index("uq_line_single_grade", "line_id", unique=True,
                 sqlite_where=db.text("criterion_id IS NULL"),
                 postgresql_where=db.text("criterion_id IS NULL")),
        db.CheckConstraint("value >= 0 AND value <= 20", name="ck_score_0_20"),
    )

    line = db.relationship("EnrollmentLine", back_populates="scores")
    criterion = db.relationship("GradingCriterion", back_populates="scores")

    @property
    def weight(self):
        return self.criterion.weight if self.criterion is not None else 1.0

class FinalGrade(db.Model):
    __tablename__ = "final_grade"
    id = db.Column(db.Integer, primary_key=True)
    line_id = db.Column(db.Integer, db.ForeignKey("enrollment_line.id"), unique=True, nullable=False)
    value = db.Column(db.Float, nullable=False)
    verdict = db.Column(db.String(16), nullable=False)   # passed | failed
    computed_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    closed_at = db.Column(db.DateTime)
    closed_by_id = db.Column(db.Integer, db.ForeignKey("user.id"))

    line = db.relationship("EnrollmentLine", back_populates="final_grade")

    @property
    def sealed(self):
        return self.closed_at is not None

class RecordClosure(db.Model):
    __tablename__ = "record_closure"
    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey("teaching_assignment.id"),
                              unique=True, nullable=False)
    code = db.Column(db.String(32), unique=True, nullable=False)   # ACTA-2026-00001
    status = db.Column(db.String(16), nullable=False, default="closed")
    closed_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    closed_by_id = db.Column(db.Integer, db.ForeignKey("user.id"))

    assignment = db.relationship("TeachingAssignment", back_populates="closure")

class CodeSequence(db.Model):
    __tablename__ = "code_sequence"
    namespace = db.Column(db.String(64), primary_key=True)   # "acta" / "enrollment:<period_id>"
    last_value = db.Column(db.Integer, nullable=False, default=0)
