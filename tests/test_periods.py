from registrar.extensions import db
from registrar.errors import NotFound
from registrar.models import Period
from registrar.services import periods
from tests.helpers import RegistrarTestCase


class ActivatePeriodTest(RegistrarTestCase):
    def test_exactly_one_active(self):
        self.assertEqual(periods.get_active_period().id, self.period.id)
        periods.activate_period(self.next_period.id)
        active = Period.query.filter_by(is_active=True).all()
        self.assertEqual([p.id for p in active], [self.next_period.id])
        self.assertEqual(periods.get_active_period().name, "2026-II")

    def test_reactivating_the_active_period(self):
        periods.activate_period(self.period.id)
        self.assertEqual(Period.query.filter_by(is_active=True).count(), 1)

    def test_unknown_period_changes_nothing(self):
        with self.assertRaises(NotFound):
            periods.activate_period(9999)
        self.assertEqual(periods.get_active_period().id, self.period.id)

    def test_no_active_period(self):
        self.period.is_active = False
        db.session.commit()
        self.assertIsNone(periods.get_active_period())
