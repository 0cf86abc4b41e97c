import logging
import re
from functools import wraps

import bcrypt
from flask import Blueprint, current_app, g, jsonify, request, session

from .errors import error_response
from .models import UserRole, new_user, public_user

logger = logging.getLogger(__name__)

auth = Blueprint('auth', __name__)

MIN_PHONE_DIGITS = 10


def email_allowed(email, role):
    """Campus email check: roll numbers for students, staff addresses for faculty"""
    if role == UserRole.STUDENT:
        domain = re.escape(current_app.config['STUDENT_EMAIL_DOMAIN'])
        return re.fullmatch(rf'[0-9a-z]+@{domain}', email) is not None
    domain = re.escape(current_app.config['FACULTY_EMAIL_DOMAIN'])
    return re.fullmatch(rf'[a-zA-Z0-9._%+-]+@{domain}', email) is not None


def parse_role(value):
    try:
        return UserRole((value or '').upper())
    except ValueError:
        return None


def hash_password(password):
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password, hashed):
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash
        return False


def login_user(user):
    session.clear()
    session['user_id'] = user['id']
    session['user_email'] = user['email']


def login_required(view_func):
    @wraps(view_func)
    def _wrapped(*args, **kwargs):
        # The email is the unique login; the id must still belong to it
        email = session.get('user_email')
        user = current_app.store.find_user(email) if email else None
        if not user or user.get('id') != session.get('user_id'):
            session.clear()
            return error_response('Not logged in', 401)
        g.user = user
        return view_func(*args, **kwargs)
    return _wrapped


# -------------------------
# REGISTER
# -------------------------
@auth.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or request.form

    full_name = (data.get("fullName") or '').strip()
    phone = re.sub(r'\D', '', data.get("phoneNumber") or '')
    email = (data.get("email") or '').strip().lower()
    password = data.get("password") or ''
    role = parse_role(data.get("role"))

    # Validation
    if not full_name or not email or not password:
        return error_response("Please fill all required fields", 400)

    if role is None:
        return error_response("Please select a role (STUDENT or FACULTY)", 400)

    if not email_allowed(email, role):
        if role == UserRole.STUDENT:
            allowed = f"CMRIT Student (@{current_app.config['STUDENT_EMAIL_DOMAIN']})"
        else:
            allowed = f"CMRIT Faculty (@{current_app.config['FACULTY_EMAIL_DOMAIN']})"
        return error_response(f"Only {allowed} emails are allowed.", 400)

    if len(phone) < MIN_PHONE_DIGITS:
        return error_response("Please enter a valid 10-digit phone number.", 400)

    user = new_user(full_name, phone, email, hash_password(password), role)
    if not current_app.store.save_user(user):
        return error_response("This email or campus ID is already registered on the HONESTA network.", 409)

    logger.info("User registered: %s (%s)", user['id'], role.value)
    login_user(user)
    return jsonify({'message': 'Account created', 'user': public_user(user)}), 201


# -------------------------
# LOGIN
# -------------------------
@auth.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or request.form

    email = (data.get("email") or '').strip()
    password = data.get("password") or ''
    role = parse_role(data.get("role"))

    user = current_app.store.find_user(email) if email else None
    if (not user or role is None or user.get('role') != role.value
            or not check_password(password, user.get('password', ''))):
        return error_response("Authentication failed. Ensure you used the correct CMRIT email and password.", 401)

    login_user(user)
    return jsonify({'message': 'Login successful', 'user': public_user(user)})


# -------------------------
# LOGOUT
# -------------------------
@auth.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'message': 'You have been logged out'})


@auth.route('/me')
@login_required
def me():
    return jsonify({'user': public_user(g.user)})
