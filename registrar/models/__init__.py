from ..extensions import db
from .people import Student, Teacher, User
from .course import (Program, StudyPlan, Shift, Period, CourseUnit,
                     TeachingAssignment, CapacityRule)
from .enrollment import PreEnrollment, PreEnrollmentLine, Enrollment, EnrollmentLine
from .grading import GradingCriterion, Score, FinalGrade, RecordClosure, CodeSequence

__all__ = [
    "Student", "Teacher", "User",
    "Program", "StudyPlan", "Shift", "Period", "CourseUnit",
    "TeachingAssignment", "CapacityRule",
    "PreEnrollment", "PreEnrollmentLine", "Enrollment", "EnrollmentLine",
    "GradingCriterion", "Score", "FinalGrade", "RecordClosure", "CodeSequence",
]
