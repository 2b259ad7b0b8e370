from flask import Blueprint, request, redirect, url_for, flash, jsonify, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import SQLAlchemyError
from ..access import require_manage, require_toggle, role_for, can_read
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Milestone, utcnow
from ..status import MILESTONE_STATUSES, milestone_status, next_milestone_status, sort_by_date
from .helpers import form_action, json_action, parse_date

milestone_bp = Blueprint('milestones', __name__)

SORT_KEYS = {
    'due_date': lambda m: m.due_date,
    'target_date': lambda m: m.target_date,
}


def _get_milestone(milestone_id):
    milestone = db.session.get(Milestone, milestone_id)
    if milestone is None:
        raise NotFoundError('Milestone not found.')
    return milestone


def _milestone_fields():
    title = (request.form.get('title') or '').strip()
    if not title:
        raise ValidationError('Title is required.')
    try:
        order_number = int(request.form.get('order_number') or 0)
    except ValueError:
        raise ValidationError('Order must be a whole number.')
    return {
        'title': title,
        'description': (request.form.get('description') or '').strip() or None,
        'due_date': parse_date(request.form.get('due_date')),
        'target_date': parse_date(request.form.get('target_date')),
        'order_number': order_number,
    }


def _apply_status(milestone, status):
    milestone.status = status
    milestone.actual_completion_date = utcnow() if status == 'completed' else None


def milestone_to_dict(m, now):
    return {
        'id': m.id,
        'project_id': m.project_id,
        'title': m.title,
        'description': m.description,
        'status': m.status,
        'display_status': milestone_status(m, now),
        'due_date': m.due_date.isoformat() if m.due_date else None,
        'target_date': m.target_date.isoformat() if m.target_date else None,
        'actual_completion_date': m.actual_completion_date.isoformat() if m.actual_completion_date else None,
        'order_number': m.order_number,
        'created_by': m.created_by,
        'created_at': m.created_at.isoformat(),
    }


@milestone_bp.route('/api/projects/<int:project_id>/milestones')
@login_required
def list_milestones(project_id):
    if not can_read(role_for(current_user.id, project_id)):
        return jsonify({'milestones': []})
    now = utcnow()
    try:
        milestones = (Milestone.query.filter_by(project_id=project_id)
                      .order_by(Milestone.order_number.asc()).all())
    except SQLAlchemyError as e:
        current_app.logger.error(f"Listing milestones for project {project_id} failed: {e}", exc_info=True)
        milestones = []

    sort_key = SORT_KEYS.get(request.args.get('sort'))
    if sort_key:
        milestones = sort_by_date(milestones, sort_key)
    return jsonify({'milestones': [milestone_to_dict(m, now) for m in milestones]})


@milestone_bp.route('/projects/<int:project_id>/milestones', methods=['POST'])
@login_required
@form_action
def add_milestone(project_id):
    project, _ = require_manage(current_user, project_id)
    milestone = Milestone(project_id=project.id, status='pending', created_by=current_user.id,
                          **_milestone_fields())
    db.session.add(milestone)
    db.session.commit()
    flash('Milestone added.', 'success')
    return redirect(url_for('projects.project_detail', project_id=project.id) + '#milestones')


@milestone_bp.route('/milestones/<int:milestone_id>/update', methods=['POST'])
@login_required
@form_action
def update_milestone(milestone_id):
    milestone = _get_milestone(milestone_id)
    require_manage(current_user, milestone.project_id)
    for field, value in _milestone_fields().items():
        setattr(milestone, field, value)

    status = request.form.get('status')
    if status:
        if status not in MILESTONE_STATUSES:
            raise ValidationError(f'Unknown milestone status: {status}')
        if status != milestone.status:
            _apply_status(milestone, status)

    db.session.commit()
    flash(f'Milestone "{milestone.title}" has been updated.', 'success')
    return redirect(url_for('projects.project_detail', project_id=milestone.project_id) + '#milestones')


@milestone_bp.route('/milestones/<int:milestone_id>/delete', methods=['POST'])
@login_required
@form_action
def delete_milestone(milestone_id):
    milestone = _get_milestone(milestone_id)
    require_manage(current_user, milestone.project_id)
    project_id = milestone.project_id
    db.session.delete(milestone)
    db.session.commit()
    flash('Milestone has been deleted.', 'success')
    return redirect(url_for('projects.project_detail', project_id=project_id) + '#milestones')


@milestone_bp.route('/milestones/<int:milestone_id>/toggle', methods=['POST'])
@login_required
@json_action
def toggle_milestone(milestone_id):
    """Advance pending -> in_progress -> completed -> pending. Clients may do this too."""
    milestone = _get_milestone(milestone_id)
    require_toggle(current_user, milestone.project_id)
    _apply_status(milestone, next_milestone_status(milestone.status))
    db.session.commit()
    return jsonify({
        'success': True,
        'status': milestone.status,
        'display_status': milestone_status(milestone, utcnow()),
    })
