import unittest
from itertools import count

from registrar import create_app
from registrar.extensions import db
from registrar.models import (Program, StudyPlan, Shift, Period, CourseUnit, Teacher,
                              Student, TeachingAssignment, CapacityRule)

_seq = count(1)


class RegistrarTestCase(unittest.TestCase):
    """App context over a fresh in-memory database with a small catalog."""

    config = "config.TestConfig"

    def setUp(self):
        self.app = create_app(self.config)
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.create_all()
        self.seed_catalog()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()

    def seed_catalog(self):
        self.program = Program(code="COMP-01", name="Computing", cycles=6)
        self.plan = StudyPlan(code="PLAN-COMP-2024", name="Computing 2024", program=self.program)
        self.morning = Shift(name="Morning")
        self.evening = Shift(name="Evening")
        self.period = Period(name="2026-I", year=2026, term=1, is_active=True)
        self.next_period = Period(name="2026-II", year=2026, term=2)
        self.programming = CourseUnit(code="FUND-101", name="Programming Fundamentals",
                                      plan=self.plan, cycle=1, credits=4)
        self.maths = CourseUnit(code="MAT-101", name="Basic Mathematics",
                                plan=self.plan, cycle=1, credits=3)
        self.teacher = Teacher(teacher_no="T001", name="Rosa Quispe")
        db.session.add_all([self.program, self.plan, self.morning, self.evening,
                            self.period, self.next_period, self.programming,
                            self.maths, self.teacher])
        db.session.flush()
        self.assignment = TeachingAssignment(teacher=self.teacher, course_unit=self.programming,
                                             period=self.period, shift=self.morning,
                                             section="A")
        db.session.add(self.assignment)
        db.session.commit()

    def make_student(self, shift=None, program=None, **kw):
        n = next(_seq)
        student = Student(student_no=f"S{n:05d}", first_names=kw.pop("first_names", f"Ana {n}"),
                          last_name=kw.pop("last_name", "Perez"),
                          program=program or self.program, plan=self.plan,
                          shift=shift or self.morning, **kw)
        db.session.add(student)
        db.session.commit()
        return student

    def make_rule(self, max_enrolled, cycle=1, shift=None, period=None, is_active=True):
        rule = CapacityRule(program=self.program, cycle=cycle, shift=shift or self.morning,
                            period=period, max_enrolled=max_enrolled, is_active=is_active)
        db.session.add(rule)
        db.session.commit()
        return rule
