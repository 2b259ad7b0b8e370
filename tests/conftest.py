"""
FreelanceDesk Test Configuration

Shared fixtures for all tests. Every test gets a fresh in-memory database,
a temporary storage root and a suppressed mailer.
"""
import pytest
from werkzeug.security import generate_password_hash

from freelancedesk import create_app
from freelancedesk.extensions import db, mailer
from freelancedesk.models import Project, ProjectClient, User

PASSWORD = 'correct-horse'


# =============================================================================
# FIXTURES: Application
# =============================================================================

@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'STORAGE_BACKEND': 'local',
        'STORAGE_ROOT': str(tmp_path / 'storage'),
        'MAIL_SUPPRESS_SEND': True,
        'SITE_URL': 'http://freelancedesk.test',
        'INVITE_TTL_DAYS': 14,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def request_ctx(app):
    """Request context for services that build URLs."""
    with app.test_request_context():
        yield


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sent_mail(app):
    return mailer.sent


# =============================================================================
# FIXTURES: Users and projects
# =============================================================================

@pytest.fixture
def make_user(app):
    def _make(name, email):
        user = User(name=name, email=email,
                    password=generate_password_hash(PASSWORD, method='pbkdf2:sha256:1000'))
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def owner(make_user):
    return make_user('Olivia Owner', 'owner@example.com')


@pytest.fixture
def client_user(make_user):
    return make_user('Carl Client', 'client@example.com')


@pytest.fixture
def outsider(make_user):
    return make_user('Otto Outsider', 'outsider@example.com')


@pytest.fixture
def project(owner):
    project = Project(name='Website relaunch', owner_id=owner.id, status='active')
    db.session.add(project)
    db.session.commit()
    return project


@pytest.fixture
def membership(project, client_user):
    link = ProjectClient(project_id=project.id, client_id=client_user.id)
    db.session.add(link)
    db.session.commit()
    return link


@pytest.fixture
def login(client):
    """Sign the test client in as ``user`` (signing out whoever was there)."""
    def _login(user):
        client.get('/logout')
        resp = client.post('/login', data={'email': user.email, 'password': PASSWORD})
        assert resp.status_code == 302
        return client
    return _login
