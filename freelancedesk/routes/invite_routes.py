from flask import Blueprint, render_template, request, redirect, url_for, flash, current_app
from flask_login import login_required, current_user
from ..errors import ExpiredInviteError, NotFoundError, UnauthenticatedError
from ..extensions import db
from ..invites import create_invite, resend_invite, revoke_invite, redeem_invite
from ..models import ProjectInvite
from .helpers import form_action

invite_bp = Blueprint('invites', __name__)


def _to_clients(project_id):
    return redirect(url_for('projects.project_detail', project_id=project_id) + '#clients')


@invite_bp.route('/projects/<int:project_id>/invites', methods=['POST'])
@login_required
@form_action
def invite_client(project_id):
    invite = create_invite(project_id, request.form.get('email'), current_user)
    flash(f'Invitation sent to {invite.email}.', 'success')
    return _to_clients(project_id)


@invite_bp.route('/invites/<int:invite_id>/resend', methods=['POST'])
@login_required
@form_action
def resend(invite_id):
    invite = db.get_or_404(ProjectInvite, invite_id)
    project_id = invite.project_id
    if resend_invite(invite_id, current_user):
        flash(f'Invitation resent to {invite.email}.', 'success')
    else:
        flash(f'Could not reach {invite.email} right now. The email will be retried.', 'warning')
    return _to_clients(project_id)


@invite_bp.route('/invites/<int:invite_id>/revoke', methods=['POST'])
@login_required
@form_action
def revoke(invite_id):
    project_id = revoke_invite(invite_id, current_user)
    flash('Invitation revoked.', 'success')
    return _to_clients(project_id)


def _login_for(token):
    return redirect(url_for('auth.login', next=url_for('invites.accept', token=token)))


@invite_bp.route('/invite/<token>', methods=['GET', 'POST'])
def accept(token):
    if not current_user.is_authenticated:
        # Come back to this page once signed in
        return _login_for(token)

    if request.method == 'POST':
        try:
            project_id = redeem_invite(token, current_user)
        except UnauthenticatedError:
            return _login_for(token)
        flash('Invitation accepted. Welcome to the project!', 'success')
        current_app.logger.info(f"Invite redeemed by user {current_user.id} for project {project_id}")
        return redirect(url_for('projects.project_detail', project_id=project_id))

    invite = ProjectInvite.query.filter_by(token=token).first()
    if invite is None:
        raise NotFoundError('Invalid invitation link.')
    if invite.accepted:
        return redirect(url_for('projects.project_detail', project_id=invite.project_id))
    if invite.is_expired():
        raise ExpiredInviteError()
    return render_template('invite.html', invite=invite, token=token)
