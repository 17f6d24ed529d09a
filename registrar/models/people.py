from flask_login import UserMixin
from ..extensions import db

class Student(db.Model):
    __tablename__ = "student"
    id = db.Column(db.Integer, primary_key=True)
    student_no = db.Column(db.String(32), unique=True, nullable=False)
    first_names = db.Column(db.String(64), nullable=False)
    last_name = db.Column(db.String(64), nullable=False)
    second_last_name = db.Column(db.String(64))
    program_id = db.Column(db.Integer, db.ForeignKey("program.id"))
    plan_id = db.Column(db.Integer, db.ForeignKey("study_plan.id"))
    shift_id = db.Column(db.Integer, db.ForeignKey("shift.id"))   # default shift
    current_cycle = db.Column(db.Integer, nullable=False, default=1)

    program = db.relationship("Program")
    plan = db.relationship("StudyPlan")
    shift = db.relationship("Shift")
    enrollments = db.relationship(
        "Enrollment", back_populates="student", cascade="all, delete-orphan"
    )

    @property
    def full_name(self):
        last = " ".join(p for p in (self.last_name, self.second_last_name) if p)
        return f"{last}, {self.first_names}"

class Teacher(db.Model):
    __tablename__ = "teacher"
    id = db.Column(db.Integer, primary_key=True)
    teacher_no = db.Column(db.String(32), unique=True, nullable=False)
    name = db.Column(db.String(64), nullable=False)
    dept = db.Column(db.String(64))

    assignments = db.relationship("TeachingAssignment", back_populates="teacher")

class User(UserMixin, db.Model):
    __tablename__ = "user"
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(16), nullable=False)   # admin | teacher | student
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    student_id = db.Column(db.Integer, db.ForeignKey("student.id"))
    teacher_id = db.Column(db.Integer, db.ForeignKey("teacher.id"))

    student = db.relationship("Student", backref=db.backref("auth", uselist=False))
    teacher = db.relationship("Teacher", backref=db.backref("auth", uselist=False))

    @property
    def is_active(self):
        return self.enabled
