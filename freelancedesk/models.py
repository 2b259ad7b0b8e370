# freelancedesk/models.py

from datetime import datetime, timezone

from flask_login import UserMixin

from .extensions import db


def utcnow():
    """Naive UTC timestamp, the form every DateTime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# -----------------------
# Database Models
# -----------------------

class User(UserMixin, db.Model):
    __tablename__ = 'profiles'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(150), unique=True, nullable=False)
    password = db.Column(db.String(256), nullable=False)
    avatar_path = db.Column(db.String(300), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class Project(db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    deadline = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='active')  # active, completed
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=utcnow)

    owner = db.relationship('User', backref='owned_projects', lazy=True)
    memberships = db.relationship('ProjectClient', backref='project', lazy=True, cascade="all, delete-orphan")
    invites = db.relationship('ProjectInvite', backref='project', lazy=True, cascade="all, delete-orphan")
    todos = db.relationship('Todo', backref='project', lazy=True, cascade="all, delete-orphan")
    milestones = db.relationship('Milestone', backref='project', lazy=True, cascade="all, delete-orphan")
    invoices = db.relationship('Invoice', backref='project', lazy=True, cascade="all, delete-orphan")
    messages = db.relationship('Message', backref='project', lazy=True, cascade="all, delete-orphan")
    files = db.relationship('ProjectFile', backref='project', lazy=True, cascade="all, delete-orphan")

    @property
    def completed_todos(self):
        return Todo.query.filter_by(project_id=self.id, completed=True).count()

    @property
    def total_todos(self):
        return Todo.query.filter_by(project_id=self.id).count()


class ProjectClient(db.Model):
    """An accepted invite: read and limited-write access for a client."""
    __tablename__ = 'project_clients'
    __table_args__ = (db.UniqueConstraint('project_id', 'client_id', name='uq_project_client'),)

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    client = db.relationship('User', lazy=True)


class ProjectInvite(db.Model):
    __tablename__ = 'project_invites'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    email = db.Column(db.String(150), nullable=False)
    token = db.Column(db.String(100), unique=True, nullable=False, index=True)
    accepted = db.Column(db.Boolean, default=False, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def is_expired(self, now=None):
        return (now or utcnow()) > self.expires_at

    def state(self, now=None):
        if self.accepted:
            return 'accepted'
        if self.is_expired(now):
            return 'expired'
        return 'pending'


class InviteEmail(db.Model):
    """
    Outbox row for an invite email. Written in the same commit as the invite
    so a mail provider outage never loses the fact that an email is owed.
    """
    __tablename__ = 'invite_emails'

    id = db.Column(db.Integer, primary_key=True)
    invite_id = db.Column(db.Integer, db.ForeignKey('project_invites.id', ondelete='SET NULL'), nullable=True)
    to_email = db.Column(db.String(150), nullable=False)
    subject = db.Column(db.String(200), nullable=False)
    html = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, sent, failed
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    sent_at = db.Column(db.DateTime, nullable=True)


class Todo(db.Model):
    __tablename__ = 'project_todos'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    completed = db.Column(db.Boolean, default=False, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    author = db.relationship('User', lazy=True)


class Milestone(db.Model):
    __tablename__ = 'project_milestones'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, in_progress, completed, overdue
    due_date = db.Column(db.Date, nullable=True)
    target_date = db.Column(db.Date, nullable=True)
    actual_completion_date = db.Column(db.DateTime, nullable=True)
    order_number = db.Column(db.Integer, nullable=False, default=0)
    created_by = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class Invoice(db.Model):
    __tablename__ = 'project_invoices'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    # Only ever written by invoices.recompute_amount()
    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='Open')  # Open, Paid
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    items = db.relationship('InvoiceItem', backref='invoice', lazy=True, cascade="all, delete-orphan",
                            order_by='InvoiceItem.id')


class InvoiceItem(db.Model):
    __tablename__ = 'project_invoice_items'

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('project_invoices.id'), nullable=False)
    description = db.Column(db.String(300), nullable=False)
    quantity = db.Column(db.Float, nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    @property
    def amount_cents(self):
        return round(self.quantity * self.unit_price_cents)


class Message(db.Model):
    __tablename__ = 'project_messages'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    content = db.Column(db.Text, nullable=False)
    sender_role = db.Column(db.String(20), nullable=False)  # freelancer, client
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    author = db.relationship('User', lazy=True)


class ProjectFile(db.Model):
    __tablename__ = 'project_files'
    __table_args__ = (db.UniqueConstraint('project_id', 'name', name='uq_project_file_name'),)

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    path = db.Column(db.String(500), nullable=False)
    size_bytes = db.Column(db.Integer, nullable=True)
    mime_type = db.Column(db.String(100), nullable=True)
    uploaded_by = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    version = db.Column(db.Integer, nullable=False, default=1)
    current_version_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=utcnow)

    versions = db.relationship('FileVersion', backref='project_file', lazy=True, cascade="all, delete-orphan",
                               order_by='FileVersion.version_number.desc()')

    def to_dict(self):
        return {
            'id': self.id,
            'project_id': self.project_id,
            'name': self.name,
            'path': self.path,
            'size_bytes': self.size_bytes,
            'mime_type': self.mime_type,
            'uploaded_by': self.uploaded_by,
            'version': self.version,
            'current_version_id': self.current_version_id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class FileVersion(db.Model):
    __tablename__ = 'file_versions'
    __table_args__ = (db.UniqueConstraint('project_file_id', 'version_number', name='uq_file_version_number'),)

    id = db.Column(db.Integer, primary_key=True)
    project_file_id = db.Column(db.Integer, db.ForeignKey('project_files.id'), nullable=False)
    version_number = db.Column(db.Integer, nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    size_bytes = db.Column(db.Integer, nullable=True)
    mime_type = db.Column(db.String(100), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    creator = db.relationship('User', lazy=True)


class FileDownload(db.Model):
    __tablename__ = 'file_downloads'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    file_name = db.Column(db.String(300), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    downloaded_at = db.Column(db.DateTime, nullable=False, default=utcnow)
