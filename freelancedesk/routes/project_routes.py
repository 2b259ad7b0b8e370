from flask import Blueprint, render_template, request, redirect, url_for, flash, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import SQLAlchemyError
from ..access import Role, require_manage, require_read, visible_projects
from ..errors import ValidationError
from ..extensions import db
from ..files import list_files
from ..invites import list_invites
from ..models import Project, Todo, Milestone, Invoice, Message, ProjectClient, utcnow
from ..status import todo_status, milestone_status, filter_by_status
from .helpers import form_action, parse_date

project_bp = Blueprint('projects', __name__)


@project_bp.route('/projects', methods=['GET', 'POST'])
@login_required
@form_action
def projects():
    if request.method == 'POST':
        name = (request.form.get('name') or '').strip()
        if not name:
            raise ValidationError('Project name is required.')

        new_project = Project(
            name=name,
            description=(request.form.get('description') or '').strip() or None,
            deadline=parse_date(request.form.get('deadline')),
            owner_id=current_user.id,
            status='active',
        )
        db.session.add(new_project)
        db.session.commit()
        current_app.logger.info(f"Project {new_project.id} created by user {current_user.id}")
        flash(f'Project "{name}" created successfully.', 'success')
        return redirect(url_for('projects.project_detail', project_id=new_project.id))

    try:
        all_projects = visible_projects(current_user)
    except SQLAlchemyError as e:
        current_app.logger.error(f"Listing projects failed: {e}", exc_info=True)
        all_projects = []
    return render_template('projects.html', projects=all_projects)


def _load_section(label, loader):
    try:
        return loader()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Loading {label} failed: {e}", exc_info=True)
        return []


@project_bp.route('/projects/<int:project_id>')
@login_required
def project_detail(project_id):
    project, role = require_read(current_user, project_id)
    now = utcnow()
    todo_filter = request.args.get('todos', 'all')
    milestone_filter = request.args.get('milestones', 'all')

    todos = _load_section('todos', lambda: Todo.query.filter_by(project_id=project.id)
                          .order_by(Todo.created_at.desc()).all())
    milestones = _load_section('milestones', lambda: Milestone.query.filter_by(project_id=project.id)
                               .order_by(Milestone.order_number.asc()).all())
    invoices = _load_section('invoices', lambda: Invoice.query.filter_by(project_id=project.id)
                             .order_by(Invoice.created_at.desc()).all())
    messages = _load_section('messages', lambda: Message.query.filter_by(project_id=project.id)
                             .order_by(Message.created_at.asc()).all())
    files = _load_section('files', lambda: list_files(project.id))

    clients, invites = [], []
    if role == Role.OWNER:
        clients = _load_section('clients', lambda: ProjectClient.query.filter_by(project_id=project.id).all())
        invites = _load_section('invites', lambda: list_invites(project.id, current_user, now))

    todos = filter_by_status(todos, todo_filter, todo_status, now)
    milestones = filter_by_status(milestones, milestone_filter, milestone_status, now)

    return render_template(
        'project_detail.html',
        project=project,
        is_owner=role == Role.OWNER,
        todos=[(t, todo_status(t, now)) for t in todos],
        milestones=[(m, milestone_status(m, now)) for m in milestones],
        invoices=invoices,
        messages=messages,
        files=files,
        clients=clients,
        invites=invites,
        todo_filter=todo_filter,
        milestone_filter=milestone_filter,
    )


@project_bp.route('/projects/<int:project_id>/edit', methods=['GET', 'POST'])
@login_required
@form_action
def edit_project(project_id):
    project, _ = require_manage(current_user, project_id)

    if request.method == 'POST':
        name = (request.form.get('name') or '').strip()
        if not name:
            raise ValidationError('Project name is required.')
        project.name = name
        project.description = (request.form.get('description') or '').strip() or None
        project.deadline = parse_date(request.form.get('deadline'))
        db.session.commit()
        flash('Project updated.', 'success')
        return redirect(url_for('projects.project_detail', project_id=project.id))

    return render_template('project_edit.html', project=project)


def _set_status(project_id, status, message):
    project, _ = require_manage(current_user, project_id)
    project.status = status
    db.session.commit()
    flash(message, 'success')
    return redirect(url_for('projects.project_detail', project_id=project.id))


@project_bp.route('/projects/<int:project_id>/complete', methods=['POST'])
@login_required
@form_action
def mark_complete(project_id):
    return _set_status(project_id, 'completed', 'Project marked as completed.')


@project_bp.route('/projects/<int:project_id>/activate', methods=['POST'])
@login_required
@form_action
def mark_active(project_id):
    return _set_status(project_id, 'active', 'Project status updated.')


@project_bp.route('/projects/<int:project_id>/messages', methods=['POST'])
@login_required
@form_action
def add_message(project_id):
    project, role = require_read(current_user, project_id)
    content = (request.form.get('content') or '').strip()
    if not content:
        raise ValidationError('Message cannot be empty.')

    db.session.add(Message(
        project_id=project.id,
        user_id=current_user.id,
        content=content,
        sender_role='freelancer' if role == Role.OWNER else 'client',
    ))
    db.session.commit()
    return redirect(url_for('projects.project_detail', project_id=project.id) + '#messages')
