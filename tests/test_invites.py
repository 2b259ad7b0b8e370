"""Tests for the invite lifecycle: create, mail, redeem, revoke."""

from datetime import timedelta
from urllib.parse import parse_qs, urlsplit

import pytest

from freelancedesk.errors import (AuthorizationError, ExpiredInviteError, NotFoundError,
                                  UnauthenticatedError, ValidationError)
from freelancedesk.extensions import db, mailer
from freelancedesk.invites import (create_invite, dispatch_pending, list_invites, redeem_invite,
                                   resend_invite, revoke_invite)
from freelancedesk.mailer import MailError
from freelancedesk.models import InviteEmail, ProjectClient, ProjectInvite, utcnow


def memberships(project_id, user_id):
    return ProjectClient.query.filter_by(project_id=project_id, client_id=user_id).count()


def broken_send(to, subject, html):
    raise MailError('SMTP down')


class MissedLookup:
    def filter_by(self, **criteria):
        return self

    def first(self):
        return None


class TestCreateInvite:

    def test_owner_creates_invite_and_mail_goes_out(self, request_ctx, project, owner, sent_mail):
        before = utcnow()
        invite = create_invite(project.id, 'client@example.com', owner)

        assert invite.accepted is False
        assert len(invite.token) >= 32
        expected = before + timedelta(days=14)
        assert abs((invite.expires_at - expected).total_seconds()) <= 1

        assert len(sent_mail) == 1
        assert sent_mail[0]['to'] == 'client@example.com'
        assert f'http://freelancedesk.test/invite/{invite.token}' in sent_mail[0]['html']

        outbox = InviteEmail.query.filter_by(invite_id=invite.id).one()
        assert outbox.status == 'sent'
        assert outbox.attempts == 1

    def test_email_is_normalized(self, request_ctx, project, owner):
        invite = create_invite(project.id, '  client@Example.COM ', owner)
        assert invite.email == 'client@example.com'

    def test_invalid_email(self, request_ctx, project, owner):
        with pytest.raises(ValidationError):
            create_invite(project.id, 'not-an-email', owner)
        assert ProjectInvite.query.count() == 0

    def test_client_cannot_invite(self, request_ctx, project, client_user, membership):
        with pytest.raises(AuthorizationError):
            create_invite(project.id, 'friend@example.com', client_user)

    def test_anonymous_cannot_invite(self, request_ctx, project):
        with pytest.raises(UnauthenticatedError):
            create_invite(project.id, 'friend@example.com', None)

    def test_mail_failure_keeps_invite(self, request_ctx, project, owner, monkeypatch):
        monkeypatch.setattr(mailer, 'send', broken_send)

        invite = create_invite(project.id, 'client@example.com', owner)

        assert db.session.get(ProjectInvite, invite.id) is not None
        outbox = InviteEmail.query.filter_by(invite_id=invite.id).one()
        assert outbox.status == 'failed'
        assert 'SMTP down' in outbox.last_error

    def test_dispatch_pending_retries_failed_mail(self, request_ctx, project, owner, monkeypatch, sent_mail):
        monkeypatch.setattr(mailer, 'send', broken_send)
        invite = create_invite(project.id, 'client@example.com', owner)
        monkeypatch.undo()

        assert dispatch_pending() == (1, 0)
        outbox = InviteEmail.query.filter_by(invite_id=invite.id).one()
        assert outbox.status == 'sent'
        assert outbox.attempts == 2
        assert dispatch_pending() == (0, 0)

    def test_dispatch_pending_gives_up_after_max_attempts(self, app, request_ctx, project, owner, monkeypatch):
        app.config['MAIL_MAX_ATTEMPTS'] = 2
        monkeypatch.setattr(mailer, 'send', broken_send)
        create_invite(project.id, 'client@example.com', owner)

        assert dispatch_pending() == (0, 1)
        assert dispatch_pending() == (0, 0)


class TestRedeemInvite:

    def test_redeem_creates_membership(self, request_ctx, project, owner, client_user):
        invite = create_invite(project.id, client_user.email, owner)

        assert redeem_invite(invite.token, client_user) == project.id
        assert memberships(project.id, client_user.id) == 1
        assert db.session.get(ProjectInvite, invite.id).accepted is True

    def test_redeem_twice_is_a_no_op(self, request_ctx, project, owner, client_user):
        invite = create_invite(project.id, client_user.email, owner)
        redeem_invite(invite.token, client_user)

        assert redeem_invite(invite.token, client_user) == project.id
        assert memberships(project.id, client_user.id) == 1

    def test_existing_membership_is_not_duplicated(self, request_ctx, project, owner, client_user, membership):
        invite = create_invite(project.id, client_user.email, owner)
        assert redeem_invite(invite.token, client_user) == project.id
        assert memberships(project.id, client_user.id) == 1

    def test_concurrent_membership_insert_still_succeeds(self, request_ctx, project, owner, client_user,
                                                         membership, monkeypatch):
        invite = create_invite(project.id, client_user.email, owner)
        with monkeypatch.context() as m:
            # The membership check runs before the other request commits
            m.setattr(ProjectClient, 'query', MissedLookup())
            assert redeem_invite(invite.token, client_user) == project.id

        assert db.session.get(ProjectInvite, invite.id).accepted is True
        assert memberships(project.id, client_user.id) == 1

    def test_owner_redeeming_gets_no_membership(self, request_ctx, project, owner):
        invite = create_invite(project.id, 'someone@example.com', owner)
        assert redeem_invite(invite.token, owner) == project.id
        assert memberships(project.id, owner.id) == 0

    def test_expired_invite(self, request_ctx, project, owner, client_user):
        invite = create_invite(project.id, client_user.email, owner)
        with pytest.raises(ExpiredInviteError):
            redeem_invite(invite.token, client_user, now=utcnow() + timedelta(days=15))
        assert memberships(project.id, client_user.id) == 0
        assert db.session.get(ProjectInvite, invite.id).accepted is False

    def test_unknown_token(self, request_ctx, client_user):
        with pytest.raises(NotFoundError):
            redeem_invite('no-such-token', client_user)

    def test_anonymous_redeem(self, request_ctx, project, owner):
        invite = create_invite(project.id, 'client@example.com', owner)
        with pytest.raises(UnauthenticatedError):
            redeem_invite(invite.token, None)


class TestRevokeAndResend:

    def test_revoke_accepted_invite_keeps_membership(self, request_ctx, project, owner, client_user):
        invite = create_invite(project.id, client_user.email, owner)
        token, invite_id = invite.token, invite.id
        redeem_invite(token, client_user)

        assert revoke_invite(invite_id, owner) == project.id

        assert db.session.get(ProjectInvite, invite_id) is None
        with pytest.raises(NotFoundError):
            redeem_invite(token, client_user)
        assert memberships(project.id, client_user.id) == 1

    def test_revoke_keeps_outbox_history(self, request_ctx, project, owner):
        invite = create_invite(project.id, 'client@example.com', owner)
        revoke_invite(invite.id, owner)
        assert InviteEmail.query.count() == 1
        assert InviteEmail.query.first().invite_id is None

    def test_client_cannot_revoke(self, request_ctx, project, owner, client_user, membership):
        invite = create_invite(project.id, 'friend@example.com', owner)
        with pytest.raises(AuthorizationError):
            revoke_invite(invite.id, client_user)

    def test_resend_keeps_expiry(self, request_ctx, project, owner, sent_mail):
        invite = create_invite(project.id, 'client@example.com', owner)
        expires_at = invite.expires_at

        assert resend_invite(invite.id, owner) is True
        assert len(sent_mail) == 2
        assert db.session.get(ProjectInvite, invite.id).expires_at == expires_at

    def test_list_invites_reports_state(self, request_ctx, project, owner, client_user):
        accepted = create_invite(project.id, client_user.email, owner)
        redeem_invite(accepted.token, client_user)
        pending = create_invite(project.id, 'other@example.com', owner)

        states = {invite.id: state for invite, state in list_invites(project.id, owner)}
        assert states == {accepted.id: 'accepted', pending.id: 'pending'}

        later = utcnow() + timedelta(days=20)
        states = {invite.id: state for invite, state in list_invites(project.id, owner, now=later)}
        assert states[pending.id] == 'expired'


class TestInviteRoutes:

    def test_anonymous_is_sent_to_login_with_next(self, request_ctx, client, project, owner):
        invite = create_invite(project.id, 'client@example.com', owner)

        resp = client.get(f'/invite/{invite.token}')
        assert resp.status_code == 302
        location = urlsplit(resp.headers['Location'])
        assert location.path == '/login'
        assert parse_qs(location.query)['next'] == [f'/invite/{invite.token}']

    def test_login_then_accept(self, request_ctx, client, project, owner, client_user):
        invite = create_invite(project.id, client_user.email, owner)
        client.get('/logout')

        resp = client.post(f'/login?next=/invite/{invite.token}',
                           data={'email': client_user.email, 'password': 'correct-horse'})
        assert resp.status_code == 302
        assert resp.headers['Location'].endswith(f'/invite/{invite.token}')

        page = client.get(f'/invite/{invite.token}')
        assert page.status_code == 200
        assert b'Accept invitation' in page.data

        resp = client.post(f'/invite/{invite.token}')
        assert resp.status_code == 302
        assert resp.headers['Location'].endswith(f'/projects/{project.id}')
        assert memberships(project.id, client_user.id) == 1

    def test_expired_link_page(self, request_ctx, client, login, project, owner, client_user):
        invite = create_invite(project.id, client_user.email, owner)
        invite.expires_at = utcnow() - timedelta(days=1)
        db.session.commit()

        login(client_user)
        resp = client.get(f'/invite/{invite.token}')
        assert resp.status_code == 410

    def test_unknown_link_page(self, client, login, client_user):
        login(client_user)
        assert client.get('/invite/nope').status_code == 404

    def test_owner_invites_from_project_page(self, client, login, project, owner, sent_mail):
        login(owner)
        resp = client.post(f'/projects/{project.id}/invites', data={'email': 'client@example.com'})
        assert resp.status_code == 302
        assert ProjectInvite.query.filter_by(project_id=project.id).count() == 1
        assert len(sent_mail) == 1
