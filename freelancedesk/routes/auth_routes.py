import os
import secrets
from flask import Blueprint, render_template, request, redirect, url_for, flash, session
from flask_login import login_user, logout_user, current_user, login_required
from werkzeug.security import generate_password_hash, check_password_hash
from ..extensions import db, oauth
from ..models import User
from .helpers import is_safe_next

auth_bp = Blueprint('auth', __name__)


def _after_login(next_url=None):
    if is_safe_next(next_url):
        return redirect(next_url)
    return redirect(url_for('main.dashboard'))


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    next_url = request.values.get('next')
    if current_user.is_authenticated:
        return _after_login(next_url)

    if request.method == 'POST':
        email = (request.form.get('email') or '').strip().lower()
        password = request.form.get('password') or ''
        user = User.query.filter_by(email=email).first()
        if user and check_password_hash(user.password, password):
            login_user(user)
            return _after_login(next_url)
        else:
            flash('Invalid credentials. Please try again.', 'danger')
    return render_template('login.html', next_url=next_url)


@auth_bp.route('/register', methods=['GET', 'POST'])
def register():
    next_url = request.values.get('next')
    if request.method == 'POST':
        name = (request.form.get('name') or '').strip()
        email = (request.form.get('email') or '').strip().lower()
        password = request.form.get('password') or ''
        confirm_password = request.form.get('confirm_password') or ''

        if not name or not email or not password:
            flash('Name, email and password are required.', 'danger')
            return redirect(url_for('auth.register', next=next_url))

        if User.query.filter_by(email=email).first():
            flash('Email address is already registered. Please log in.', 'warning')
            return redirect(url_for('auth.login', next=next_url))

        if password != confirm_password:
            flash('Passwords do not match. Please try again.', 'danger')
            return redirect(url_for('auth.register', next=next_url))

        new_user = User(
            name=name,
            email=email,
            password=generate_password_hash(password, method='pbkdf2:sha256')
        )
        db.session.add(new_user)
        db.session.commit()

        flash('Registration successful! Please log in.', 'success')
        return redirect(url_for('auth.login', next=next_url))

    return render_template('register.html', next_url=next_url)


@auth_bp.route('/logout')
@login_required
def logout():
    logout_user()
    return redirect(url_for('auth.login'))


@auth_bp.route('/login/google')
def google_login():
    nonce = secrets.token_urlsafe(16)
    session['oauth_nonce'] = nonce
    session['login_next'] = request.args.get('next')
    redirect_uri = url_for('auth.google_callback', _external=True)
    return oauth.google.authorize_redirect(redirect_uri, nonce=nonce)


@auth_bp.route('/login/google/callback')
def google_callback():
    token = oauth.google.authorize_access_token()
    nonce = session.pop('oauth_nonce', None)
    user_info = oauth.google.parse_id_token(token, nonce=nonce)

    if not user_info:
        flash('Google login failed: unable to fetch user info.', 'danger')
        return redirect(url_for('auth.login'))

    email = user_info['email'].lower()
    user = User.query.filter_by(email=email).first()

    if not user:
        user = User(
            name=user_info.get('name') or email.split('@')[0],
            email=email,
            password=generate_password_hash(os.urandom(16).hex(), method='pbkdf2:sha256')
        )
        db.session.add(user)
        db.session.commit()

    login_user(user)
    flash('You have been successfully logged in with Google.', 'success')
    return _after_login(session.pop('login_next', None))
