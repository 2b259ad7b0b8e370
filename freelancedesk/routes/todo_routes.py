from flask import Blueprint, request, redirect, url_for, flash, jsonify, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import SQLAlchemyError
from ..access import require_manage, require_toggle, role_for, can_read
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Todo, utcnow
from ..status import todo_status
from .helpers import form_action, json_action, parse_date

todo_bp = Blueprint('todos', __name__)


def _get_todo(todo_id):
    todo = db.session.get(Todo, todo_id)
    if todo is None:
        raise NotFoundError('Todo not found.')
    return todo


def _todo_fields():
    title = (request.form.get('title') or '').strip()
    if not title:
        raise ValidationError('Title is required.')
    return {
        'title': title,
        'description': (request.form.get('description') or '').strip() or None,
        'due_date': parse_date(request.form.get('due_date')),
    }


def todo_to_dict(todo, now):
    return {
        'id': todo.id,
        'project_id': todo.project_id,
        'title': todo.title,
        'description': todo.description,
        'completed': todo.completed,
        'due_date': todo.due_date.isoformat() if todo.due_date else None,
        'created_by': todo.created_by,
        'created_at': todo.created_at.isoformat(),
        'status': todo_status(todo, now),
    }


@todo_bp.route('/api/projects/<int:project_id>/todos')
@login_required
def list_todos(project_id):
    # No access means an empty list, never partial data
    if not can_read(role_for(current_user.id, project_id)):
        return jsonify({'todos': []})
    now = utcnow()
    try:
        todos = Todo.query.filter_by(project_id=project_id).order_by(Todo.created_at.desc()).all()
    except SQLAlchemyError as e:
        current_app.logger.error(f"Listing todos for project {project_id} failed: {e}", exc_info=True)
        todos = []
    return jsonify({'todos': [todo_to_dict(t, now) for t in todos]})


@todo_bp.route('/projects/<int:project_id>/todos', methods=['POST'])
@login_required
@form_action
def add_todo(project_id):
    project, _ = require_manage(current_user, project_id)
    todo = Todo(project_id=project.id, completed=False, created_by=current_user.id, **_todo_fields())
    db.session.add(todo)
    db.session.commit()
    flash('New todo added!', 'success')
    return redirect(url_for('projects.project_detail', project_id=project.id) + '#todos')


@todo_bp.route('/todos/<int:todo_id>/update', methods=['POST'])
@login_required
@form_action
def update_todo(todo_id):
    todo = _get_todo(todo_id)
    require_manage(current_user, todo.project_id)
    for field, value in _todo_fields().items():
        setattr(todo, field, value)
    db.session.commit()
    flash(f'Todo "{todo.title}" has been updated.', 'success')
    return redirect(url_for('projects.project_detail', project_id=todo.project_id) + '#todos')


@todo_bp.route('/todos/<int:todo_id>/delete', methods=['POST'])
@login_required
@form_action
def delete_todo(todo_id):
    todo = _get_todo(todo_id)
    require_manage(current_user, todo.project_id)
    project_id = todo.project_id
    db.session.delete(todo)
    db.session.commit()
    flash('Todo has been deleted.', 'success')
    return redirect(url_for('projects.project_detail', project_id=project_id) + '#todos')


@todo_bp.route('/todos/<int:todo_id>/toggle', methods=['POST'])
@login_required
@json_action
def toggle_todo(todo_id):
    """
    Owner and clients may tick todos. The client sends the value it shows
    optimistically; on a failure response it rolls its checkbox back.
    """
    todo = _get_todo(todo_id)
    require_toggle(current_user, todo.project_id)

    data = request.get_json(silent=True) or {}
    completed = data.get('completed')
    todo.completed = (not todo.completed) if completed is None else bool(completed)
    db.session.commit()
    return jsonify({'success': True, 'completed': todo.completed, 'status': todo_status(todo, utcnow())})
