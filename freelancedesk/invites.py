# freelancedesk/invites.py

"""
Client invitations.

An invite is created by the project owner, mailed to the client and redeemed
once through ``/invite/<token>``. Only ``created`` and ``accepted`` are stored
states; an expired invite is one whose ``expires_at`` has passed, a revoked
invite is simply gone.

Emails go through the ``invite_emails`` outbox. The invite and its outbox row
are committed together, then delivery is attempted. A failed delivery leaves
the row for ``dispatch_pending`` and never undoes the invite.
"""

import logging
import secrets
from datetime import timedelta

from email_validator import EmailNotValidError, validate_email
from flask import current_app, render_template, url_for
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .access import can_manage, role_for
from .errors import (AuthorizationError, ExpiredInviteError, NotFoundError,
                     UnauthenticatedError, UpstreamFailure, ValidationError)
from .extensions import db, mailer
from .mailer import MailError
from .models import InviteEmail, ProjectClient, ProjectInvite, utcnow

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def _commit():
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error('Database write failed: %s', e, exc_info=True)
        raise UpstreamFailure() from e


def _require_owner(actor, project_id):
    if actor is None or not actor.is_authenticated:
        raise UnauthenticatedError()
    if not can_manage(role_for(actor.id, project_id)):
        raise AuthorizationError('Only the project owner can manage invitations.')


def _get_invite(invite_id):
    invite = db.session.get(ProjectInvite, invite_id)
    if invite is None:
        raise NotFoundError('Invitation not found.')
    return invite


def normalize_email(email):
    try:
        return validate_email((email or '').strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f'Please enter a valid email address ({e}).')


def invite_url(token):
    base = current_app.config['SITE_URL'].rstrip('/')
    return base + url_for('invites.accept', token=token)


def _enqueue_email(invite):
    html = render_template(
        'emails/invite.html',
        project=invite.project,
        accept_url=invite_url(invite.token),
        expires_at=invite.expires_at,
    )
    outbox = InviteEmail(
        invite_id=invite.id,
        to_email=invite.email,
        subject='Invitation to FreelanceDesk: project access',
        html=html,
    )
    db.session.add(outbox)
    return outbox


def _deliver(outbox):
    outbox.attempts += 1
    try:
        mailer.send(outbox.to_email, outbox.subject, outbox.html)
    except MailError as e:
        outbox.status = 'failed'
        outbox.last_error = str(e)
        logger.warning('Invite email %s to %s failed (attempt %s): %s',
                       outbox.id, outbox.to_email, outbox.attempts, e)
    else:
        outbox.status = 'sent'
        outbox.sent_at = utcnow()
        outbox.last_error = None
    _commit()
    return outbox.status == 'sent'


def create_invite(project_id, email, actor, now=None):
    _require_owner(actor, project_id)
    email = normalize_email(email)
    now = now or utcnow()

    invite = ProjectInvite(
        project_id=project_id,
        email=email,
        token=secrets.token_urlsafe(TOKEN_BYTES),
        accepted=False,
        expires_at=now + timedelta(days=current_app.config['INVITE_TTL_DAYS']),
        created_at=now,
    )
    db.session.add(invite)
    db.session.flush()
    outbox = _enqueue_email(invite)
    _commit()
    logger.info('Invite %s created for %s on project %s', invite.id, email, project_id)

    _deliver(outbox)
    return invite


def resend_invite(invite_id, actor):
    """Mail the same link again. The expiry is left as it is."""
    invite = _get_invite(invite_id)
    _require_owner(actor, invite.project_id)
    outbox = _enqueue_email(invite)
    _commit()
    return _deliver(outbox)


def revoke_invite(invite_id, actor):
    """
    Delete the invite whether or not it was accepted. Memberships granted by
    an earlier acceptance are left in place.
    """
    invite = _get_invite(invite_id)
    project_id = invite.project_id
    _require_owner(actor, project_id)
    InviteEmail.query.filter_by(invite_id=invite.id).update({'invite_id': None})
    db.session.delete(invite)
    _commit()
    logger.info('Invite %s revoked on project %s', invite_id, project_id)
    return project_id


def redeem_invite(token, actor, now=None):
    """
    Turn a token into a project membership for ``actor``.

    Returns the project id. Redeeming an accepted invite again is a no-op
    success. The membership row and the accepted flag are written in one
    commit, so a failure leaves the invite redeemable.
    """
    if actor is None or not actor.is_authenticated:
        raise UnauthenticatedError('Please log in to accept the invitation.')

    invite = ProjectInvite.query.filter_by(token=token).first()
    if invite is None:
        raise NotFoundError('Invalid invitation link.')
    if invite.accepted:
        return invite.project_id
    if invite.is_expired(now):
        raise ExpiredInviteError()

    project_id = invite.project_id
    if invite.project.owner_id != actor.id:
        exists = ProjectClient.query.filter_by(project_id=project_id, client_id=actor.id).first()
        if exists is None:
            db.session.add(ProjectClient(project_id=project_id, client_id=actor.id))
    invite.accepted = True

    try:
        db.session.commit()
    except IntegrityError:
        # Membership was created concurrently; that still counts as success.
        db.session.rollback()
        invite = ProjectInvite.query.filter_by(token=token).first()
        if invite is None:
            raise NotFoundError('Invalid invitation link.')
        invite.accepted = True
        _commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error('Redeeming invite %s failed: %s', invite.id, e, exc_info=True)
        raise UpstreamFailure() from e

    logger.info('User %s joined project %s via invite', actor.id, project_id)
    return project_id


def list_invites(project_id, actor, now=None):
    _require_owner(actor, project_id)
    invites = (ProjectInvite.query
               .filter_by(project_id=project_id)
               .order_by(ProjectInvite.created_at.desc())
               .all())
    return [(invite, invite.state(now)) for invite in invites]


def dispatch_pending(limit=50):
    """Retry undelivered invite emails. Returns (sent, failed) counts."""
    max_attempts = current_app.config['MAIL_MAX_ATTEMPTS']
    rows = (InviteEmail.query
            .filter(InviteEmail.status.in_(('pending', 'failed')),
                    InviteEmail.attempts < max_attempts)
            .order_by(InviteEmail.created_at.asc())
            .limit(limit)
            .all())
    sent = failed = 0
    for outbox in rows:
        if _deliver(outbox):
            sent += 1
        else:
            failed += 1
    return sent, failed
