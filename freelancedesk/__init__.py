# freelancedesk/__init__.py

import logging
import os

import click
from flask import Flask, flash, jsonify, redirect, render_template, request, url_for
from flask.cli import AppGroup
from dotenv import load_dotenv

# Import extensions
from .extensions import db, migrate, login_manager, oauth, mailer, storage
from .errors import FreelanceDeskError, UnauthenticatedError
# Import models so Flask-Migrate can see them
from .models import User
from .invites import dispatch_pending

# Import Blueprints from the routes package
from .routes.main_routes import main
from .routes.auth_routes import auth_bp
from .routes.project_routes import project_bp
from .routes.todo_routes import todo_bp
from .routes.milestone_routes import milestone_bp
from .routes.invoice_routes import invoice_bp
from .routes.invite_routes import invite_bp
from .routes.file_routes import file_bp

load_dotenv()


def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True, template_folder='../templates')

    # --- Load Configuration ---
    app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv('DATABASE_URL', 'sqlite:///freelancedesk.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY')
    app.config['GOOGLE_CLIENT_ID'] = os.getenv('GOOGLE_CLIENT_ID')
    app.config['GOOGLE_CLIENT_SECRET'] = os.getenv('GOOGLE_CLIENT_SECRET')
    app.config['SITE_URL'] = os.getenv('SITE_URL', 'http://localhost:5000')
    app.config['INVITE_TTL_DAYS'] = int(os.getenv('INVITE_TTL_DAYS', '14'))
    app.config['SMTP_HOST'] = os.getenv('SMTP_HOST')
    app.config['SMTP_PORT'] = int(os.getenv('SMTP_PORT', '587'))
    app.config['SMTP_USER'] = os.getenv('SMTP_USER')
    app.config['SMTP_PASSWORD'] = os.getenv('SMTP_PASSWORD')
    app.config['MAIL_FROM'] = os.getenv('MAIL_FROM')
    app.config['MAIL_SUPPRESS_SEND'] = os.getenv('MAIL_SUPPRESS_SEND', '0' if os.getenv('SMTP_HOST') else '1') == '1'
    app.config['MAIL_MAX_ATTEMPTS'] = int(os.getenv('MAIL_MAX_ATTEMPTS', '5'))
    app.config['STORAGE_BACKEND'] = os.getenv('STORAGE_BACKEND', 'local')
    app.config['STORAGE_ROOT'] = os.getenv('STORAGE_ROOT')
    app.config['S3_ENDPOINT_URL'] = os.getenv('S3_ENDPOINT_URL')
    app.config['AWS_REGION'] = os.getenv('AWS_REGION')
    app.config['SIGNED_URL_TTL'] = int(os.getenv('SIGNED_URL_TTL', '3600'))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')

    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    # --- Initialize Extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    oauth.init_app(app)
    mailer.init_app(app)
    storage.init_app(app)

    # --- Configure Login Manager ---
    login_manager.login_view = 'auth.login'
    login_manager.login_message_category = 'warning'

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        if wants_json():
            return jsonify({'success': False, 'message': UnauthenticatedError.default_message}), 401
        flash('Please log in to access this page.', 'warning')
        return redirect(url_for('auth.login', next=request.full_path.rstrip('?')))

    # --- Configure Google OAuth ---
    oauth.register(
        name='google',
        client_id=app.config['GOOGLE_CLIENT_ID'],
        client_secret=app.config['GOOGLE_CLIENT_SECRET'],
        server_metadata_url='https://accounts.google.com/.well-known/openid-configuration',
        client_kwargs={'scope': 'openid email profile'}
    )

    # --- Register Blueprints ---
    app.register_blueprint(main)
    app.register_blueprint(auth_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(todo_bp)
    app.register_blueprint(milestone_bp)
    app.register_blueprint(invoice_bp)
    app.register_blueprint(invite_bp)
    app.register_blueprint(file_bp)

    register_error_handlers(app)
    register_commands(app)

    return app


def wants_json():
    return request.path.startswith('/api/') or request.is_json


def register_error_handlers(app):
    @app.errorhandler(FreelanceDeskError)
    def handle_app_error(error):
        if isinstance(error, UnauthenticatedError):
            return redirect(url_for('auth.login', next=request.full_path.rstrip('?')))
        if error.status_code >= 500:
            app.logger.error('%s on %s: %s', type(error).__name__, request.path, error.message)
        if wants_json():
            return jsonify({'success': False, 'message': error.message}), error.status_code
        return render_template('error.html', message=error.message, status=error.status_code), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        if wants_json():
            return jsonify({'success': False, 'message': 'Not found.'}), 404
        return render_template('error.html', message='Page not found.', status=404), 404


def register_commands(app):
    @app.cli.command('init-db')
    def init_db():
        """Create all tables (use `flask db upgrade` once migrations exist)."""
        db.create_all()
        click.echo('Database initialised.')

    invites_cli = AppGroup('invites', help='Invitation email outbox.')

    @invites_cli.command('dispatch')
    @click.option('--limit', default=50, show_default=True)
    def dispatch(limit):
        """Retry invite emails that have not been delivered yet."""
        sent, failed = dispatch_pending(limit=limit)
        click.echo(f'Sent {sent}, failed {failed}.')

    app.cli.add_command(invites_cli)
