# blueprints/auth.py
"""
Authentication Blueprint
Handles token login for users, employees and project heads, registration and password management
"""

import re
import logging
from flask import Blueprint, current_app, jsonify
from flask_login import current_user
from sqlalchemy import func, or_
from models import db, User, Employee, ProjectHead
from extensions import limiter
from utils.decorators import auth_required
from utils.helpers import get_json_body, success_response, error_response
from utils.tokens import generate_token

logger = logging.getLogger(__name__)

# Create blueprint
auth_bp = Blueprint('auth', __name__)

MIN_PASSWORD_LENGTH = 6
EMP_ID_RE = re.compile(r'^[A-Za-z0-9]+$')


def _login_rate_limit():
    return current_app.config.get('LOGIN_RATE_LIMIT', '10 per minute')


def _looks_like_emp_id(identifier):
    return identifier.upper().startswith('EMP') or bool(EMP_ID_RE.match(identifier))


def _find_employee(identifier):
    employee = Employee.query.filter_by(emp_id=identifier.upper()).first()
    if employee is None:
        employee = Employee.query.filter(func.lower(Employee.emp_id) == identifier.lower()).first()
    return employee


def _project_login(project_name, password):
    if not project_name:
        return error_response('Project name is required', 400)
    project = ProjectHead.query.filter_by(project_name=project_name).first()
    if project is None or not project.check_password(password):
        return error_response('Invalid project or password', 401)

    logger.info(f"Project head {project.project_name} logged in")
    return jsonify({
        'success': True,
        'token': generate_token(project),
        'user': dict(project.to_dict(), role='project'),
    })


@auth_bp.route('/api/auth/login', methods=['POST'])
@limiter.limit(_login_rate_limit)
def login():
    """
    Log in with email/username, employee ID or project name (site login)
    and password
    """
    data = get_json_body()
    identifier = str(
        data.get('identifier') or data.get('empId') or data.get('email') or data.get('username') or ''
    ).strip()
    password = data.get('password') or ''
    login_type = data.get('loginType')

    if not password:
        return error_response('Password is required', 400)
    if login_type == 'project' or data.get('projectName'):
        return _project_login(str(data.get('projectName') or identifier).strip(), password)
    if not identifier:
        return error_response('Email, username or Employee ID is required', 400)

    try:
        if login_type == 'employee' or (login_type != 'user' and '@' not in identifier
                                        and _looks_like_emp_id(identifier)):
            employee = _find_employee(identifier)
            if employee is not None:
                if not employee.active:
                    return error_response('Your account is inactive. Please contact admin.', 403)
                if not employee.password_hash:
                    return error_response('Login is not enabled for this Employee ID. Please contact admin.', 403)
                if not employee.check_password(password):
                    return error_response('Invalid Employee ID or password', 401)

                logger.info(f"Employee {employee.emp_id} logged in")
                return jsonify({
                    'success': True,
                    'token': generate_token(employee),
                    'user': {
                        'id': employee.id,
                        'empId': employee.emp_id,
                        'name': employee.name,
                        'role': 'employee',
                        'site': employee.site,
                        'siteType': employee.site_type,
                    },
                })
            if login_type == 'employee':
                return error_response('Invalid Employee ID or password', 401)

        lowered = identifier.lower()
        user = User.query.filter(or_(User.email == lowered, User.username == lowered)).first()
        if user is None or not user.check_password(password):
            return error_response('Invalid credentials', 401)
        if not user.active:
            return error_response('Your account is inactive. Please contact admin.', 403)

        logger.info(f"User {user.email} logged in")
        return jsonify({
            'success': True,
            'token': generate_token(user),
            'user': user.to_dict(),
        })

    except Exception as e:
        logger.error(f"Login error: {e}")
        db.session.rollback()
        return error_response('Login failed', 500)


@auth_bp.route('/api/auth/register', methods=['POST'])
def register():
    """Create a dashboard account; only a super-admin may create admins"""
    data = get_json_body()
    email = str(data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    role = data.get('role') or 'user'

    if not email or not password:
        return error_response('Email and password are required', 400)
    if len(password) < MIN_PASSWORD_LENGTH:
        return error_response(f'Password must be at least {MIN_PASSWORD_LENGTH} characters', 400)
    if role not in ('user', 'admin', 'super-admin'):
        return error_response('Invalid role', 400)
    if role != 'user' and not (current_user.is_authenticated and current_user.is_super_admin):
        return error_response('Super Admin access required', 403)

    try:
        if User.query.filter_by(email=email).first():
            return error_response('User already exists', 400)

        user = User(
            email=email,
            name=(data.get('name') or email.split('@')[0]).strip(),
            role=role,
            active=True,
            can_upload=True,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()

        logger.info(f"Registered user {email} ({role})")
        return jsonify({
            'success': True,
            'token': generate_token(user),
            'user': user.to_dict(),
        }), 201

    except Exception as e:
        logger.error(f"Register error: {e}")
        db.session.rollback()
        return error_response('Registration failed', 500)


@auth_bp.route('/api/profile', methods=['GET'])
@auth_required
def profile():
    """Current caller's profile"""
    data = current_user.to_dict()
    data['kind'] = current_user.kind
    data['role'] = current_user.auth_role
    if current_user.kind == 'employee':
        data['jobRole'] = current_user.role
    return success_response(data)


@auth_bp.route('/api/profile/change-password', methods=['POST'])
@auth_required
def change_password():
    """Allow callers to change their password"""
    data = get_json_body()
    current_password = data.get('currentPassword') or ''
    new_password = data.get('newPassword') or ''

    if not current_password or not new_password:
        return error_response('Current password and new password are required', 400)
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return error_response(f'New password must be at least {MIN_PASSWORD_LENGTH} characters long', 400)
    if not current_user.check_password(current_password):
        return error_response('Current password is incorrect', 401)

    try:
        current_user.set_password(new_password)
        db.session.commit()
        logger.info(f"Password changed for {current_user.get_id()}")
        return success_response(message='Password changed successfully')
    except Exception as e:
        logger.error(f"Change password error: {e}")
        db.session.rollback()
        return error_response('Failed to change password', 500)
