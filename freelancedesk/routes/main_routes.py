# freelancedesk/routes/main_routes.py

from flask import Blueprint, render_template, redirect, url_for, current_app
from flask_login import login_required, current_user
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from ..access import visible_projects
from ..extensions import db
from ..models import Invoice, Milestone, Todo, utcnow
from ..status import milestone_status, todo_status, upcoming_within_days, sort_by_date

main = Blueprint('main', __name__)

UPCOMING_DAYS = 14


@main.route('/')
@login_required
def index():
    return redirect(url_for('main.dashboard'))


@main.route('/dashboard')
@login_required
def dashboard():
    now = utcnow()
    try:
        projects = visible_projects(current_user)
        project_ids = [p.id for p in projects]
        owned = [p for p in projects if p.owner_id == current_user.id]

        paid_revenue = db.session.query(func.sum(Invoice.amount_cents)).filter(
            Invoice.owner_id == current_user.id,
            Invoice.status == 'Paid'
        ).scalar() or 0

        open_invoices = Invoice.query.filter_by(owner_id=current_user.id, status='Open').count()

        milestones = Milestone.query.filter(
            Milestone.project_id.in_(project_ids),
            Milestone.status != 'completed'
        ).all() if project_ids else []

        todos = Todo.query.filter(
            Todo.project_id.in_(project_ids),
            Todo.completed.is_(False)
        ).all() if project_ids else []
    except SQLAlchemyError as e:
        current_app.logger.error(f"Dashboard query failed for user {current_user.id}: {e}", exc_info=True)
        projects, owned, milestones, todos = [], [], [], []
        paid_revenue, open_invoices = 0, 0

    return render_template(
        'dashboard.html',
        active_projects=sum(1 for p in owned if p.status != 'completed'),
        completed_projects=sum(1 for p in owned if p.status == 'completed'),
        paid_revenue=paid_revenue,
        open_invoices=open_invoices,
        upcoming_deadlines=upcoming_within_days(
            [p for p in projects if p.status != 'completed'], now, UPCOMING_DAYS, key=lambda p: p.deadline),
        upcoming_milestones=upcoming_within_days(milestones, now, UPCOMING_DAYS),
        overdue_milestones=[m for m in milestones if milestone_status(m, now) == 'overdue'],
        todos=[(t, todo_status(t, now)) for t in sort_by_date(todos, key=lambda t: t.due_date)],
    )
