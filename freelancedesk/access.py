# freelancedesk/access.py

"""
Who may do what on a project.

A user is the project's Owner, one of its Clients (holds a ProjectClient
membership), or nobody. Routes resolve the role once per request through the
``require_*`` guards before reading or writing anything.
"""

import enum

from sqlalchemy import or_

from .errors import AuthorizationError, NotFoundError
from .extensions import db
from .models import Project, ProjectClient


class Role(enum.Enum):
    OWNER = 'owner'
    CLIENT = 'client'
    NONE = 'none'


def role_for(user_id, project_id, project=None):
    if user_id is None:
        return Role.NONE
    if project is None:
        project = db.session.get(Project, project_id)
    if project is None:
        return Role.NONE
    if project.owner_id == user_id:
        return Role.OWNER
    membership = ProjectClient.query.filter_by(project_id=project_id, client_id=user_id).first()
    if membership:
        return Role.CLIENT
    return Role.NONE


def can_read(role):
    return role in (Role.OWNER, Role.CLIENT)


def can_manage(role):
    return role == Role.OWNER


def can_toggle_completion(role):
    return role in (Role.OWNER, Role.CLIENT)


def _user_id(user):
    if user is None or not getattr(user, 'is_authenticated', False):
        return None
    return user.id


def _resolve(user, project_id, allowed, message):
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError('Project not found.')
    role = role_for(_user_id(user), project_id, project=project)
    if not allowed(role):
        raise AuthorizationError(message)
    return project, role


def require_read(user, project_id):
    return _resolve(user, project_id, can_read, "You don't have access to this project.")


def require_manage(user, project_id):
    return _resolve(user, project_id, can_manage, 'Only the project owner can do that.')


def require_toggle(user, project_id):
    return _resolve(user, project_id, can_toggle_completion, "You don't have access to this project.")


def visible_projects(user):
    """Projects the user owns or was invited to, newest first."""
    user_id = _user_id(user)
    if user_id is None:
        return []
    shared = db.select(ProjectClient.project_id).where(ProjectClient.client_id == user_id)
    return (Project.query
            .filter(or_(Project.owner_id == user_id, Project.id.in_(shared)))
            .order_by(Project.created_at.desc())
            .all())
