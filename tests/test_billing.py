"""
Tests for monthly invoice generation, payments and invoice administration.
"""

from datetime import date, datetime

import pytest

from lessonbook import stores
from lessonbook.directory import SqlDirectory
from lessonbook.errors import Conflict, Forbidden, InvalidInput, NotFound, ServerFault
from lessonbook.models.invoice import Invoice, InvoiceStatus
from lessonbook.models.lesson import LessonStatus
from lessonbook.schemas.invoice import InvoiceCreate, InvoiceUpdate
from lessonbook.services import billing
from tests.conftest import OTHER_STUDENT_ID, STUDENT_ID, TEACHER_ID, UNRATED_TEACHER_ID

DONE = LessonStatus.COMPLETED


def _snapshot(invoice):
    return (invoice.id, invoice.student_id, invoice.teacher_id, invoice.lesson_ids,
            invoice.total_amount, invoice.paid_amount, invoice.status, invoice.due_date)


class TestPeriodHelpers:

    def test_billing_period_covers_whole_month(self):
        assert billing.billing_period(2, 2024) == (datetime(2024, 2, 1), datetime(2024, 3, 1))
        assert billing.billing_period(12, 2024) == (datetime(2024, 12, 1), datetime(2025, 1, 1))

    def test_due_date_is_fifteenth_of_next_month(self):
        assert billing.due_date_for(3, 2024) == date(2024, 4, 15)
        assert billing.due_date_for(12, 2024) == date(2025, 1, 15)

    @pytest.mark.parametrize("month, year", [(None, 2024), (3, None), (0, 2024), (13, 2024), (3, 1999)])
    def test_invalid_period(self, month, year):
        with pytest.raises(InvalidInput):
            billing.validate_period(month, year)


class TestGenerateMonthlyInvoices:

    def test_march_scenario(self, db, callers, make_lesson):
        for day in (4, 11, 18):
            make_lesson(when=datetime(2024, 3, day, 17, 0), status=DONE)

        result = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024)

        assert result.generated == 1
        assert result.failed == 0
        invoice = result.invoices[0]
        assert (invoice.student_id, invoice.teacher_id) == (STUDENT_ID, TEACHER_ID)
        assert len(invoice.lessons) == 3
        assert invoice.total_amount == 150
        assert invoice.paid_amount == 0
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.due_date == date(2024, 4, 15)

    def test_lessons_are_ordered_by_date(self, db, callers, make_lesson):
        late = make_lesson(when=datetime(2024, 3, 20, 9, 0), status=DONE)
        early = make_lesson(when=datetime(2024, 3, 2, 9, 0), status=DONE)

        invoice = billing.generate_monthly_invoices(db, callers.admin, 3, 2024).invoices[0]

        assert invoice.lesson_ids == [early.id, late.id]

    def test_running_twice_is_idempotent(self, db, callers, make_lesson):
        for day in (4, 11, 18):
            make_lesson(when=datetime(2024, 3, day, 17, 0), status=DONE)

        first = [_snapshot(invoice) for invoice in billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices]
        second = [_snapshot(invoice) for invoice in billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices]

        assert first == second
        assert db.query(Invoice).count() == 1

    def test_rerun_reflects_current_lessons(self, db, callers, make_lesson):
        kept = make_lesson(when=datetime(2024, 3, 4, 17, 0), status=DONE)
        dropped = make_lesson(when=datetime(2024, 3, 11, 17, 0), status=DONE)
        first = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices[0]
        assert first.total_amount == 100

        dropped.status = LessonStatus.CANCELLED
        added = make_lesson(when=datetime(2024, 3, 25, 17, 0), status=DONE)
        db.commit()

        second = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices[0]

        assert second.id == first.id
        assert second.lesson_ids == [kept.id, added.id]
        assert second.total_amount == 100

    def test_rerun_empties_invoice_when_nothing_is_billable(self, db, callers, make_lesson):
        lesson = make_lesson(when=datetime(2024, 3, 4, 17, 0), status=DONE)
        first = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices[0]

        lesson.status = LessonStatus.CANCELLED
        db.commit()
        result = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024)

        assert result.generated == 0
        assert result.failed == 0
        assert [invoice.id for invoice in result.cleared] == [first.id]
        invoice = stores.get_invoice(db, first.id)
        assert invoice.lesson_ids == []
        assert invoice.total_amount == 0
        assert invoice.status == InvoiceStatus.PENDING
        assert db.query(Invoice).count() == 1

    def test_emptied_invoice_keeps_payment(self, db, callers, make_lesson):
        lesson = make_lesson(when=datetime(2024, 3, 4, 17, 0), status=DONE)
        invoice = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices[0]
        billing.mark_as_paid(db, callers.teacher, invoice.id, paid_date=date(2024, 4, 2))

        lesson.scheduled_date = datetime(2024, 4, 2, 17, 0)
        db.commit()
        billing.generate_monthly_invoices(db, callers.teacher, 3, 2024)

        invoice = stores.get_invoice(db, invoice.id)
        assert invoice.lesson_ids == []
        assert invoice.total_amount == 0
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.paid_amount == 50
        assert invoice.paid_date == date(2024, 4, 2)

    def test_other_periods_are_left_alone(self, db, callers, make_lesson):
        make_lesson(when=datetime(2024, 2, 12, 17, 0), status=DONE)
        february = billing.generate_monthly_invoices(db, callers.teacher, 2, 2024).invoices[0]

        billing.generate_monthly_invoices(db, callers.teacher, 3, 2024)

        assert stores.get_invoice(db, february.id).total_amount == 50

    def test_rerun_keeps_payment(self, db, callers, make_lesson):
        make_lesson(when=datetime(2024, 3, 4, 17, 0), status=DONE)
        invoice = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices[0]
        billing.mark_as_paid(db, callers.teacher, invoice.id, paid_date=date(2024, 4, 2))

        invoice = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices[0]

        assert invoice.status == InvoiceStatus.PAID
        assert invoice.paid_amount == 50
        assert invoice.paid_date == date(2024, 4, 2)

    def test_teacher_without_rate_bills_zero(self, db, callers, make_lesson):
        make_lesson(when=datetime(2024, 3, 4, 17, 0), teacher=callers.unrated_teacher, status=DONE)
        make_lesson(when=datetime(2024, 3, 5, 17, 0), teacher=callers.unrated_teacher, status=DONE)

        invoice = billing.generate_monthly_invoices(db, callers.admin, 3, 2024).invoices[0]

        assert invoice.teacher_id == UNRATED_TEACHER_ID
        assert len(invoice.lessons) == 2
        assert invoice.total_amount == 0

    def test_group_lesson_fans_out_per_student(self, db, callers, make_lesson):
        make_lesson(when=datetime(2024, 3, 4, 17, 0), students=[STUDENT_ID, OTHER_STUDENT_ID],
                    lesson_type="group", status=DONE)
        make_lesson(when=datetime(2024, 3, 6, 17, 0), students=[STUDENT_ID], status=DONE)

        invoices = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices

        totals = {invoice.student_id: (len(invoice.lessons), invoice.total_amount) for invoice in invoices}
        assert totals == {STUDENT_ID: (2, 100), OTHER_STUDENT_ID: (1, 50)}

    def test_one_invoice_per_teacher(self, db, callers, make_lesson):
        make_lesson(when=datetime(2024, 3, 4, 17, 0), status=DONE)
        make_lesson(when=datetime(2024, 3, 5, 17, 0), teacher=callers.unrated_teacher, status=DONE)

        invoices = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices

        assert sorted((i.student_id, i.teacher_id) for i in invoices) == [
            (STUDENT_ID, TEACHER_ID), (STUDENT_ID, UNRATED_TEACHER_ID)
        ]

    def test_only_lessons_inside_the_month(self, db, callers, make_lesson):
        make_lesson(when=datetime(2024, 2, 29, 23, 59), status=DONE)
        first = make_lesson(when=datetime(2024, 3, 1, 0, 0), status=DONE)
        last = make_lesson(when=datetime(2024, 3, 31, 23, 30), status=DONE)
        make_lesson(when=datetime(2024, 4, 1, 0, 0), status=DONE)

        invoice = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices[0]

        assert invoice.lesson_ids == [first.id, last.id]

    def test_only_billable_statuses(self, db, callers, make_lesson):
        billed = make_lesson(when=datetime(2024, 3, 4, 17, 0), status=DONE)
        for status in (LessonStatus.SCHEDULED, LessonStatus.CONFIRMED, LessonStatus.CANCELLED,
                       LessonStatus.CANCELLING, LessonStatus.RESCHEDULING):
            make_lesson(when=datetime(2024, 3, 5, 17, 0), status=status)

        invoice = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices[0]

        assert invoice.lesson_ids == [billed.id]

    def test_billable_statuses_can_be_overridden(self, db, callers, make_lesson):
        make_lesson(when=datetime(2024, 3, 4, 17, 0))
        make_lesson(when=datetime(2024, 3, 5, 17, 0), status=LessonStatus.CONFIRMED)
        make_lesson(when=datetime(2024, 3, 6, 17, 0), status=DONE)

        result = billing.generate_monthly_invoices(
            db, callers.teacher, 3, 2024,
            billable_statuses=(LessonStatus.SCHEDULED, LessonStatus.CONFIRMED),
        )

        assert len(result.invoices[0].lessons) == 2

    def test_no_lessons_no_invoices(self, db, callers):
        result = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024)
        assert result.generated == 0
        assert result.invoices == []

    def test_students_cannot_generate(self, db, callers):
        with pytest.raises(Forbidden):
            billing.generate_monthly_invoices(db, callers.student, 3, 2024)

    def test_missing_month(self, db, callers):
        with pytest.raises(InvalidInput):
            billing.generate_monthly_invoices(db, callers.teacher, None, 2024)

    def test_lost_insert_race_falls_back_to_update(self, db, callers, make_lesson, monkeypatch):
        make_lesson(when=datetime(2024, 3, 4, 17, 0), status=DONE)
        existing = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices[0]
        make_lesson(when=datetime(2024, 3, 12, 17, 0), status=DONE)

        real_lookup = stores.find_invoice_by_key
        calls = []

        # First lookup misses, as if the other run had not committed yet
        def racing_lookup(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                return None
            return real_lookup(*args, **kwargs)

        monkeypatch.setattr(stores, "find_invoice_by_key", racing_lookup)
        result = billing.generate_monthly_invoices(db, callers.teacher, 3, 2024)

        assert result.failed == 0
        assert result.invoices[0].id == existing.id
        assert result.invoices[0].total_amount == 100
        assert db.query(Invoice).count() == 1

    def test_failing_group_does_not_stop_the_batch(self, db, callers, make_lesson):
        make_lesson(when=datetime(2024, 3, 4, 17, 0), status=DONE)
        make_lesson(when=datetime(2024, 3, 5, 17, 0), teacher=callers.unrated_teacher, status=DONE)

        class FlakyDirectory(SqlDirectory):
            def get_teacher(self, teacher_id):
                if teacher_id == UNRATED_TEACHER_ID:
                    raise ServerFault("directory unavailable")
                return super().get_teacher(teacher_id)

        result = billing.generate_monthly_invoices(db, callers.admin, 3, 2024, directory=FlakyDirectory(db))

        assert result.generated == 1
        assert result.failed == 1
        assert result.invoices[0].teacher_id == TEACHER_ID


class TestGroupByPair:

    def test_groups_keep_input_order(self, db, callers, make_lesson):
        a = make_lesson(when=datetime(2024, 3, 1, 9, 0), students=[STUDENT_ID, OTHER_STUDENT_ID], lesson_type="group")
        b = make_lesson(when=datetime(2024, 3, 2, 9, 0), students=[STUDENT_ID])

        groups = billing.group_by_pair([a, b])

        assert {key: [lesson.id for lesson in lessons] for key, lessons in groups.items()} == {
            (STUDENT_ID, TEACHER_ID): [a.id, b.id],
            (OTHER_STUDENT_ID, TEACHER_ID): [a.id],
        }


class TestMarkAsPaid:

    @pytest.fixture
    def invoice(self, db, callers, make_lesson):
        for day in (4, 11, 18):
            make_lesson(when=datetime(2024, 3, day, 17, 0), status=DONE)
        return billing.generate_monthly_invoices(db, callers.teacher, 3, 2024).invoices[0]

    def test_defaults_to_total_and_today(self, db, callers, invoice):
        paid = billing.mark_as_paid(db, callers.teacher, invoice.id)

        assert paid.paid_amount == 150
        assert paid.status == InvoiceStatus.PAID
        assert paid.paid_date == date.today()

    def test_twice_gives_same_state(self, db, callers, invoice):
        first = _snapshot(billing.mark_as_paid(db, callers.teacher, invoice.id)) + (invoice.paid_date,)
        second = _snapshot(billing.mark_as_paid(db, callers.teacher, invoice.id)) + (invoice.paid_date,)

        assert first == second

    def test_explicit_amount_and_date(self, db, callers, invoice):
        paid = billing.mark_as_paid(db, callers.admin, invoice.id, paid_amount=100, paid_date=date(2024, 4, 10))

        assert paid.paid_amount == 100
        assert paid.paid_date == date(2024, 4, 10)
        assert paid.status == InvoiceStatus.PAID

    def test_negative_amount(self, db, callers, invoice):
        with pytest.raises(InvalidInput):
            billing.mark_as_paid(db, callers.teacher, invoice.id, paid_amount=-1)

    def test_missing_invoice(self, db, callers):
        with pytest.raises(NotFound):
            billing.mark_as_paid(db, callers.teacher, 999)

    def test_students_cannot_mark_paid(self, db, callers, invoice):
        with pytest.raises(Forbidden):
            billing.mark_as_paid(db, callers.student, invoice.id)


class TestInvoiceAdministration:

    def _data(self, **overrides):
        data = dict(student_id=STUDENT_ID, teacher_id=TEACHER_ID, month=3, year=2024,
                    lessons=[], total_amount=80.0, due_date=date(2024, 4, 15))
        data.update(overrides)
        return InvoiceCreate(**data)

    def test_create(self, db, callers, make_lesson):
        lesson = make_lesson(status=DONE)

        invoice = billing.create_invoice(db, callers.admin, self._data(lessons=[lesson.id]))

        assert invoice.id is not None
        assert invoice.lesson_ids == [lesson.id]
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.paid_amount == 0

    def test_create_duplicate_key_conflicts(self, db, callers):
        billing.create_invoice(db, callers.admin, self._data())

        with pytest.raises(Conflict):
            billing.create_invoice(db, callers.teacher, self._data(total_amount=10.0))

    def test_same_student_other_teacher_is_allowed(self, db, callers):
        billing.create_invoice(db, callers.admin, self._data())
        other = billing.create_invoice(db, callers.admin, self._data(teacher_id=UNRATED_TEACHER_ID))
        assert other.teacher_id == UNRATED_TEACHER_ID

    def test_create_conflicts_with_generated_invoice(self, db, callers, make_lesson):
        make_lesson(status=DONE)
        billing.generate_monthly_invoices(db, callers.teacher, 3, 2024)

        with pytest.raises(Conflict):
            billing.create_invoice(db, callers.admin, self._data())

    @pytest.mark.parametrize("overrides", [
        {"student_id": 404},
        {"student_id": TEACHER_ID},
        {"teacher_id": STUDENT_ID},
        {"lessons": [404]},
    ])
    def test_create_checks_references(self, db, callers, overrides):
        with pytest.raises(NotFound):
            billing.create_invoice(db, callers.admin, self._data(**overrides))

    def test_create_rejects_bad_input(self, db, callers):
        with pytest.raises(InvalidInput):
            billing.create_invoice(db, callers.admin, self._data(month=13))
        with pytest.raises(InvalidInput):
            billing.create_invoice(db, callers.admin, self._data(total_amount=-5.0))

    def test_update(self, db, callers):
        invoice = billing.create_invoice(db, callers.admin, self._data())

        updated = billing.update_invoice(db, callers.teacher, invoice.id, InvoiceUpdate(
            total_amount=90.0, status=InvoiceStatus.OVERDUE,
        ))

        assert updated.total_amount == 90
        assert updated.status == InvoiceStatus.OVERDUE
        assert updated.due_date == date(2024, 4, 15)

    def test_update_missing(self, db, callers):
        with pytest.raises(NotFound):
            billing.update_invoice(db, callers.admin, 999, InvoiceUpdate(total_amount=1.0))

    def test_delete(self, db, callers):
        invoice = billing.create_invoice(db, callers.admin, self._data())

        billing.delete_invoice(db, callers.admin, invoice.id)

        assert stores.get_invoice(db, invoice.id) is None
        with pytest.raises(NotFound):
            billing.delete_invoice(db, callers.admin, invoice.id)

    def test_students_see_only_their_invoices(self, db, callers):
        mine = billing.create_invoice(db, callers.admin, self._data())
        theirs = billing.create_invoice(db, callers.admin, self._data(student_id=OTHER_STUDENT_ID))

        assert [i.id for i in billing.list_invoices(db, callers.student)] == [mine.id]
        assert [i.id for i in billing.list_invoices(db, callers.student, student_id=OTHER_STUDENT_ID)] == [mine.id]
        assert {i.id for i in billing.list_invoices(db, callers.admin)} == {mine.id, theirs.id}

        assert billing.get_invoice(db, callers.student, mine.id).id == mine.id
        with pytest.raises(Forbidden):
            billing.get_invoice(db, callers.student, theirs.id)

    def test_list_filters(self, db, callers):
        march = billing.create_invoice(db, callers.admin, self._data())
        billing.create_invoice(db, callers.admin, self._data(month=4, due_date=date(2024, 5, 15)))

        assert [i.id for i in billing.list_invoices(db, callers.admin, month=3, year=2024)] == [march.id]
        assert billing.list_invoices(db, callers.admin, status=InvoiceStatus.PAID) == []
