# freelancedesk/status.py

"""
Display status for todos and milestones.

Everything here is a pure function of the entity and the current time. The
stored fields are only read, so the list views can call these on every
render without side effects. Comparisons happen at calendar-day granularity.
"""

from datetime import date, datetime, timedelta

COMPLETED = 'completed'
IN_PROGRESS = 'in_progress'
OVERDUE = 'overdue'
DUE_TODAY = 'due-today'
PENDING = 'pending'

MILESTONE_STATUSES = ('pending', 'in_progress', 'completed', 'overdue')

# Order of the milestone status button
_MILESTONE_CYCLE = {
    'pending': 'in_progress',
    'in_progress': 'completed',
    'completed': 'pending',
}


def _day(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    raise TypeError(f'Cannot read a calendar day from {value!r}')


def _date_status(due_date, now):
    due = _day(due_date)
    if due is None:
        return PENDING
    today = _day(now)
    if due < today:
        return OVERDUE
    if due == today:
        return DUE_TODAY
    return PENDING


def todo_status(todo, now):
    if todo.completed:
        return COMPLETED
    return _date_status(todo.due_date, now)


def milestone_status(milestone, now):
    """
    Stored status wins for completed and in_progress. Anything else falls
    back to the due date, so a pending milestone past its due date shows as
    overdue while its stored status stays pending.
    """
    if milestone.status == COMPLETED:
        return COMPLETED
    if milestone.status == IN_PROGRESS:
        return IN_PROGRESS
    return _date_status(milestone.due_date, now)


def next_milestone_status(current):
    # overdue is never stored by the toggle; it restarts the cycle
    return _MILESTONE_CYCLE.get(current, 'in_progress')


def sort_by_date(items, key):
    """Ascending by key(item); items without a date go last."""
    return sorted(items, key=lambda item: (_day(key(item)) is None, _day(key(item)) or date.max))


def upcoming_within_days(items, now, days, key=lambda item: item.due_date):
    """Items whose date is strictly after today and no later than now + days."""
    today = _day(now)
    horizon = today + timedelta(days=days)
    upcoming = [item for item in items if _day(key(item)) is not None and today < _day(key(item)) <= horizon]
    return sort_by_date(upcoming, key)


def filter_by_status(items, status, derive, now):
    if not status or status == 'all':
        return list(items)
    return [item for item in items if derive(item, now) == status]
