from unittest.mock import patch

from registrar.extensions import db
from registrar.errors import (DuplicateEnrollment, DuplicatePreEnrollment, CapacityExceeded,
                              NotApproved, NotFound, ValidationFailed)
from registrar.models import Enrollment, CodeSequence, TeachingAssignment
from registrar.services import enrollment as svc
from tests.helpers import RegistrarTestCase


class CreateEnrollmentTest(RegistrarTestCase):
    def enroll(self, student, **kw):
        kw.setdefault("lines", [{"course_unit_id": self.programming.id}])
        return svc.create_enrollment(student.id, self.period.id, kw.pop("cycle", 1), **kw)

    def test_creates_code_lines_and_assignment(self):
        student = self.make_student()
        e = self.enroll(student, lines=[{"course_unit_id": self.programming.id},
                                        {"course_unit_id": self.maths.id,
                                         "attempt_number": 2}])
        self.assertEqual(e.code, "MAT-2026-I-00001")
        self.assertEqual(e.status, "active")
        self.assertEqual(e.condition, "regular")
        self.assertEqual(e.shift_id, self.morning.id)
        by_unit = {ln.course_unit_id: ln for ln in e.lines}
        self.assertEqual(by_unit[self.programming.id].assignment_id, self.assignment.id)
        # no assignment for maths: the line is created ungraded
        self.assertIsNone(by_unit[self.maths.id].assignment_id)
        self.assertEqual(by_unit[self.maths.id].attempt_number, 2)
        self.assertEqual(by_unit[self.maths.id].status, "in-progress")

    def test_codes_increase_per_period(self):
        first = self.enroll(self.make_student())
        second = self.enroll(self.make_student())
        other = svc.create_enrollment(self.make_student().id, self.next_period.id, 1,
                                      lines=[{"course_unit_id": self.maths.id}])
        self.assertEqual(first.code, "MAT-2026-I-00001")
        self.assertEqual(second.code, "MAT-2026-I-00002")
        self.assertEqual(other.code, "MAT-2026-II-00001")

    def test_updates_current_cycle(self):
        student = self.make_student(current_cycle=1)
        self.enroll(student, cycle=3)
        db.session.refresh(student)
        self.assertEqual(student.current_cycle, 3)

    def test_duplicate_student_period(self):
        student = self.make_student()
        self.enroll(student)
        with self.assertRaises(DuplicateEnrollment):
            self.enroll(student)
        self.assertEqual(Enrollment.query.filter_by(student_id=student.id).count(), 1)

    def test_explicit_shift_overrides_default(self):
        student = self.make_student()
        e = self.enroll(student, shift_id=self.evening.id)
        self.assertEqual(e.shift_id, self.evening.id)
        self.assertIsNone(e.lines[0].assignment_id)

    def test_invalid_input(self):
        student = self.make_student()
        with self.assertRaises(ValidationFailed):
            self.enroll(student, lines=[])
        with self.assertRaises(ValidationFailed):
            self.enroll(student, condition="honors")
        with self.assertRaises(ValidationFailed):
            self.enroll(student, cycle=0)
        with self.assertRaises(ValidationFailed):
            self.enroll(student, lines=[{"course_unit_id": self.maths.id,
                                         "attempt_number": 0}])
        with self.assertRaises(NotFound):
            svc.create_enrollment(9999, self.period.id, 1,
                                  lines=[{"course_unit_id": self.maths.id}])

    def test_failure_leaves_no_partial_state(self):
        student = self.make_student(current_cycle=1)
        with self.assertRaises(NotFound):
            self.enroll(student, cycle=2, lines=[{"course_unit_id": self.maths.id},
                                                 {"course_unit_id": 424242}])
        self.assertEqual(Enrollment.query.count(), 0)
        self.assertEqual(CodeSequence.query.count(), 0)
        db.session.refresh(student)
        self.assertEqual(student.current_cycle, 1)
        # the code sequence was not consumed by the failed attempt
        self.assertEqual(self.enroll(student).code, "MAT-2026-I-00001")


class CapacityTest(RegistrarTestCase):
    def enroll(self, student, period=None):
        return svc.create_enrollment(student.id, (period or self.period).id, 1,
                                     lines=[{"course_unit_id": self.programming.id}])

    def test_nth_succeeds_and_next_fails(self):
        self.make_rule(3)
        for _ in range(3):
            self.enroll(self.make_student())
        with self.assertRaises(CapacityExceeded) as ctx:
            self.enroll(self.make_student())
        self.assertEqual(ctx.exception.details["limit"], 3)
        self.assertEqual(Enrollment.query.count(), 3)

    def test_only_active_enrollments_count(self):
        self.make_rule(1)
        first = self.enroll(self.make_student())
        svc.update_enrollment_status(first.id, "annulled")
        self.enroll(self.make_student())

    def test_other_buckets_are_independent(self):
        self.make_rule(1)
        self.enroll(self.make_student())
        self.enroll(self.make_student(shift=self.evening))
        svc.create_enrollment(self.make_student().id, self.period.id, 2,
                              lines=[{"course_unit_id": self.maths.id}])

    def test_inactive_rule_is_ignored(self):
        self.make_rule(0, is_active=False)
        self.enroll(self.make_student())

    def test_period_scoped_rule_wins(self):
        self.make_rule(5)
        self.make_rule(1, period=self.period)
        self.enroll(self.make_student())
        with self.assertRaises(CapacityExceeded):
            self.enroll(self.make_student())
        # the scoped rule does not apply to the next period
        self.enroll(self.make_student(), period=self.next_period)
        self.enroll(self.make_student(), period=self.next_period)


class PreEnrollmentTest(RegistrarTestCase):
    def request(self, student, **kw):
        requests = kw.pop("requests", [{"course_unit_id": self.programming.id,
                                        "shift_id": self.morning.id},
                                       {"course_unit_id": self.maths.id,
                                        "shift_id": self.morning.id}])
        return svc.create_pre_enrollment(student.id, self.period.id, requests, **kw)

    def test_create_and_duplicate(self):
        student = self.make_student()
        pre = self.request(student)
        self.assertEqual(pre.status, "pending")
        self.assertEqual(len(pre.requests), 2)
        self.assertEqual(pre.requests[0].section, "A")
        with self.assertRaises(DuplicatePreEnrollment):
            self.request(student)

    def test_requests_are_required(self):
        with self.assertRaises(ValidationFailed):
            self.request(self.make_student(), requests=[])
        with self.assertRaises(ValidationFailed):
            self.request(self.make_student(),
                         requests=[{"course_unit_id": self.maths.id}])

    def test_status_values(self):
        pre = self.request(self.make_student())
        with self.assertRaises(ValidationFailed):
            svc.set_pre_enrollment_status(pre.id, "archived")
        svc.set_pre_enrollment_status(pre.id, "rejected")
        svc.set_pre_enrollment_status(pre.id, "pending")
        self.assertEqual(svc.set_pre_enrollment_status(pre.id, "approved").status, "approved")

    def test_promotion_requires_approval(self):
        pre = self.request(self.make_student())
        with self.assertRaises(NotApproved):
            svc.promote_pre_enrollment(pre.id, 1)
        svc.set_pre_enrollment_status(pre.id, "rejected")
        with self.assertRaises(NotApproved):
            svc.promote_pre_enrollment(pre.id, 1)

    def test_promotion_creates_enrollment(self):
        student = self.make_student(shift=self.evening)
        pre = self.request(student)
        svc.set_pre_enrollment_status(pre.id, "approved")
        e = svc.promote_pre_enrollment(pre.id, 1, condition="irregular")
        self.assertEqual(e.code, "MAT-2026-I-00001")
        self.assertEqual(e.condition, "irregular")
        # shift comes from the first request, not the student's default
        self.assertEqual(e.shift_id, self.morning.id)
        self.assertEqual(len(e.lines), 2)
        self.assertEqual(e.lines[0].assignment_id, self.assignment.id)
        self.assertTrue(all(ln.attempt_number == 1 for ln in e.lines))
        with self.assertRaises(DuplicateEnrollment):
            svc.promote_pre_enrollment(pre.id, 1)

    def test_promotion_prefers_requested_section(self):
        section_b = TeachingAssignment(teacher=self.teacher, course_unit=self.programming,
                                       period=self.period, shift=self.morning, section="B")
        db.session.add(section_b)
        db.session.commit()
        pre = self.request(self.make_student(), requests=[
            {"course_unit_id": self.programming.id, "shift_id": self.morning.id,
             "section": "B"}])
        svc.set_pre_enrollment_status(pre.id, "approved")
        e = svc.promote_pre_enrollment(pre.id, 1)
        self.assertEqual(e.lines[0].assignment_id, section_b.id)

    def test_promotion_skips_capacity_by_default(self):
        self.make_rule(0)
        pre = self.request(self.make_student())
        svc.set_pre_enrollment_status(pre.id, "approved")
        svc.promote_pre_enrollment(pre.id, 1)

    def test_promotion_capacity_when_enforced(self):
        self.app.config["ENFORCE_CAPACITY_ON_PROMOTION"] = True
        self.make_rule(0)
        pre = self.request(self.make_student())
        svc.set_pre_enrollment_status(pre.id, "approved")
        with self.assertRaises(CapacityExceeded):
            svc.promote_pre_enrollment(pre.id, 1)


class EnrollmentStatusTest(RegistrarTestCase):
    def test_transitions(self):
        e = svc.create_enrollment(self.make_student().id, self.period.id, 1,
                                  lines=[{"course_unit_id": self.maths.id}])
        self.assertEqual(svc.update_enrollment_status(e.id, "finalized").status, "finalized")
        # administrative override: a finalized enrollment can be reactivated
        self.assertEqual(svc.update_enrollment_status(e.id, "active").status, "active")
        with self.assertRaises(ValidationFailed):
            svc.update_enrollment_status(e.id, "closed")
        with self.assertRaises(NotFound):
            svc.update_enrollment_status(9999, "active")


class AvailableUnitsTest(RegistrarTestCase):
    def test_passed_units_are_excluded(self):
        student = self.make_student()
        e = svc.create_enrollment(student.id, self.period.id, 1,
                                  lines=[{"course_unit_id": self.programming.id},
                                         {"course_unit_id": self.maths.id}])
        by_unit = {ln.course_unit_id: ln for ln in e.lines}
        by_unit[self.programming.id].status = "passed"
        by_unit[self.maths.id].status = "failed"
        db.session.commit()

        items = svc.available_course_units(student.id)
        self.assertEqual([i["course_unit"].code for i in items], ["MAT-101"])
        self.assertEqual(items[0]["attempts"], 1)
        self.assertEqual(items[0]["next_attempt"], 2)


class FailedEnrollmentTest(RegistrarTestCase):
    def test_malformed_line_leaves_no_state(self):
        student = self.make_student()
        with self.assertRaises(ValidationFailed):
            svc.create_enrollment(student.id, self.period.id, 1,
                                  lines=[{"course_unit_id": self.maths.id}, 7])
        db.session.commit()
        self.assertEqual(Enrollment.query.count(), 0)
        self.assertEqual(CodeSequence.query.count(), 0)

    def test_unexpected_error_rolls_back(self):
        student = self.make_student()
        with patch("registrar.services.enrollment._resolve_assignment",
                   side_effect=RuntimeError("connection reset")):
            with self.assertRaises(RuntimeError):
                svc.create_enrollment(student.id, self.period.id, 1,
                                      lines=[{"course_unit_id": self.maths.id}])
        # a later, unrelated commit must not persist the failed attempt
        db.session.commit()
        self.assertEqual(Enrollment.query.count(), 0)
        self.assertEqual(CodeSequence.query.count(), 0)
        e = svc.create_enrollment(student.id, self.period.id, 1,
                                  lines=[{"course_unit_id": self.maths.id}])
        self.assertEqual(e.code, "MAT-2026-I-00001")

    def test_numbers_posted_as_text(self):
        e = svc.create_enrollment(self.make_student().id, self.period.id, "2",
                                  lines=[{"course_unit_id": self.maths.id,
                                          "attempt_number": "3"}])
        self.assertEqual(e.cycle, 2)
        self.assertEqual(e.lines[0].attempt_number, 3)
        for bad in ("abc", 1.5, True):
            with self.assertRaises(ValidationFailed):
                svc.create_enrollment(self.make_student().id, self.period.id, bad,
                                      lines=[{"course_unit_id": self.maths.id}])
        with self.assertRaises(ValidationFailed):
            svc.create_enrollment(self.make_student().id, self.period.id, 1,
                                  lines=[{"course_unit_id": self.maths.id,
                                          "attempt_number": "first"}])


class PreEnrollmentNotesTest(RegistrarTestCase):
    def test_status_change_keeps_notes(self):
        pre = svc.create_pre_enrollment(
            self.make_student().id, self.period.id,
            [{"course_unit_id": self.maths.id, "shift_id": self.morning.id}])
        svc.set_pre_enrollment_status(pre.id, "approved", notes="documents checked")
        pre = svc.set_pre_enrollment_status(pre.id, "pending")
        self.assertEqual(pre.notes, "documents checked")

    def test_requests_must_be_objects(self):
        with self.assertRaises(ValidationFailed):
            svc.create_pre_enrollment(self.make_student().id, self.period.id, ["FUND-101"])


class ListingTest(RegistrarTestCase):
    def setUp(self):
        super().setUp()
        self.ana = self.make_student(first_names="Ana", last_name="Torres")
        self.luis = self.make_student(first_names="Luis", last_name="Mendoza")
        self.first = svc.create_enrollment(self.ana.id, self.period.id, 1,
                                           lines=[{"course_unit_id": self.maths.id}])
        self.second = svc.create_enrollment(self.luis.id, self.period.id, 1,
                                            lines=[{"course_unit_id": self.maths.id}])
        svc.create_enrollment(self.ana.id, self.next_period.id, 2,
                              lines=[{"course_unit_id": self.programming.id}])
        svc.update_enrollment_status(self.second.id, "annulled")

    def test_enrollment_filters(self):
        in_period = svc.list_enrollments(period_id=self.period.id)
        self.assertEqual([e.id for e in in_period], [self.second.id, self.first.id])
        active = svc.list_enrollments(period_id=self.period.id, status="active")
        self.assertEqual([e.id for e in active], [self.first.id])
        self.assertEqual(len(svc.list_enrollments(program_id=self.program.id)), 3)
        self.assertEqual(svc.list_enrollments(program_id=9999), [])

    def test_enrollment_search(self):
        self.assertEqual({e.student_id for e in svc.list_enrollments(search="mendo")},
                         {self.luis.id})
        by_no = svc.list_enrollments(period_id=self.period.id, search=self.ana.student_no)
        self.assertEqual([e.id for e in by_no], [self.first.id])

    def test_pre_enrollment_filters(self):
        requests = [{"course_unit_id": self.maths.id, "shift_id": self.morning.id}]
        a = svc.create_pre_enrollment(self.ana.id, self.period.id, requests)
        b = svc.create_pre_enrollment(self.luis.id, self.period.id, requests)
        c = svc.create_pre_enrollment(self.luis.id, self.next_period.id, requests)
        svc.set_pre_enrollment_status(b.id, "approved")
        self.assertEqual([p.id for p in svc.list_pre_enrollments()], [c.id, b.id, a.id])
        self.assertEqual([p.id for p in svc.list_pre_enrollments(self.period.id)], [b.id, a.id])
        self.assertEqual([p.id for p in svc.list_pre_enrollments(status="approved")], [b.id])
