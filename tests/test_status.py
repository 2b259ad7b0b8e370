"""Tests for derived todo and milestone status."""

from datetime import date, datetime, timedelta
from types import SimpleNamespace

from freelancedesk.status import (
    filter_by_status,
    milestone_status,
    next_milestone_status,
    sort_by_date,
    todo_status,
    upcoming_within_days,
)

NOW = datetime(2026, 3, 10, 15, 30)
TODAY = NOW.date()


def todo(completed=False, due_date=None):
    return SimpleNamespace(completed=completed, due_date=due_date)


def milestone(status='pending', due_date=None):
    return SimpleNamespace(status=status, due_date=due_date)


class TestTodoStatus:

    def test_completed_wins_over_past_due_date(self):
        assert todo_status(todo(True, TODAY - timedelta(days=3)), NOW) == 'completed'

    def test_past_due_date_is_overdue(self):
        assert todo_status(todo(due_date=TODAY - timedelta(days=1)), NOW) == 'overdue'

    def test_due_today(self):
        assert todo_status(todo(due_date=TODAY), NOW) == 'due-today'

    def test_future_due_date_is_pending(self):
        assert todo_status(todo(due_date=TODAY + timedelta(days=1)), NOW) == 'pending'

    def test_no_due_date_is_pending(self):
        assert todo_status(todo(), NOW) == 'pending'

    def test_day_granularity_ignores_time_of_day(self):
        late_tonight = datetime(2026, 3, 10, 23, 59)
        assert todo_status(todo(due_date=late_tonight), NOW) == 'due-today'

    def test_iso_string_dates(self):
        assert todo_status(todo(due_date='2026-03-09'), NOW) == 'overdue'
        assert todo_status(todo(due_date='2026-03-10T08:00:00'), NOW) == 'due-today'


class TestMilestoneStatus:

    def test_stored_completed_wins(self):
        assert milestone_status(milestone('completed', TODAY - timedelta(days=5)), NOW) == 'completed'

    def test_stored_in_progress_wins(self):
        assert milestone_status(milestone('in_progress', TODAY - timedelta(days=5)), NOW) == 'in_progress'

    def test_pending_past_due_shows_overdue_without_changing_stored_status(self):
        m = milestone('pending', TODAY - timedelta(days=1))
        assert milestone_status(m, NOW) == 'overdue'
        assert m.status == 'pending'

    def test_pending_due_today(self):
        assert milestone_status(milestone('pending', TODAY), NOW) == 'due-today'

    def test_pending_without_date(self):
        assert milestone_status(milestone('pending'), NOW) == 'pending'

    def test_stored_overdue_with_future_date_falls_back_to_date(self):
        assert milestone_status(milestone('overdue', TODAY + timedelta(days=2)), NOW) == 'pending'


class TestNextMilestoneStatus:

    def test_cycle(self):
        assert next_milestone_status('pending') == 'in_progress'
        assert next_milestone_status('in_progress') == 'completed'
        assert next_milestone_status('completed') == 'pending'

    def test_overdue_restarts_at_in_progress(self):
        assert next_milestone_status('overdue') == 'in_progress'


class TestDateHelpers:

    def test_sort_by_date_puts_dateless_last(self):
        items = [todo(due_date=None), todo(due_date=date(2026, 3, 12)), todo(due_date=date(2026, 3, 11))]
        ordered = sort_by_date(items, key=lambda t: t.due_date)
        assert [t.due_date for t in ordered] == [date(2026, 3, 11), date(2026, 3, 12), None]

    def test_upcoming_within_days_excludes_today_and_beyond_horizon(self):
        items = [
            todo(due_date=TODAY),
            todo(due_date=TODAY + timedelta(days=1)),
            todo(due_date=TODAY + timedelta(days=14)),
            todo(due_date=TODAY + timedelta(days=15)),
            todo(due_date=None),
        ]
        upcoming = upcoming_within_days(items, NOW, 14)
        assert [t.due_date for t in upcoming] == [TODAY + timedelta(days=1), TODAY + timedelta(days=14)]

    def test_filter_by_status(self):
        items = [todo(True), todo(due_date=TODAY - timedelta(days=1)), todo()]
        assert len(filter_by_status(items, 'all', todo_status, NOW)) == 3
        assert filter_by_status(items, 'overdue', todo_status, NOW) == [items[1]]
        assert filter_by_status(items, 'completed', todo_status, NOW) == [items[0]]
