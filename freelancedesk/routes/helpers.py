# freelancedesk/routes/helpers.py

from datetime import datetime
from functools import wraps
from urllib.parse import urlsplit

from flask import current_app, flash, jsonify, redirect, request, url_for
from sqlalchemy.exc import SQLAlchemyError

from ..errors import (AuthorizationError, ConflictError, ExpiredInviteError, FreelanceDeskError,
                      UpstreamFailure, ValidationError)
from ..extensions import db


def back(default_endpoint='main.dashboard', **values):
    target = request.form.get('next') or request.referrer
    if is_safe_next(target):
        return redirect(target)
    return redirect(url_for(default_endpoint, **values))


def is_safe_next(target):
    """Only same-site relative paths are followed after a form or a login."""
    if not target:
        return False
    parts = urlsplit(target)
    if parts.scheme or parts.netloc:
        return parts.netloc == request.host and parts.scheme in ('http', 'https')
    return target.startswith('/') and not target.startswith('//')


def form_action(view):
    """
    Turn authorization, validation and storage failures of a form post into a
    flashed message on the page the form came from.
    """
    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except (AuthorizationError, ValidationError, ExpiredInviteError, ConflictError, UpstreamFailure) as e:
            db.session.rollback()
            flash(e.message, 'danger')
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Write failed on {request.path}: {e}", exc_info=True)
            flash(UpstreamFailure.default_message, 'danger')
        return back()
    return wrapper


def parse_date(value):
    if not value:
        return None
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f'Invalid date: {value}')


def json_action(view):
    """JSON endpoints report every failure as {'success': False, 'message': ...}."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except FreelanceDeskError as e:
            db.session.rollback()
            return jsonify({'success': False, 'message': e.message}), e.status_code
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Write failed on {request.path}: {e}", exc_info=True)
            return jsonify({'success': False, 'message': UpstreamFailure.default_message}), UpstreamFailure.status_code
    return wrapper
