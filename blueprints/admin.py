# blueprints/admin.py
"""
Admin Blueprint
User account management and the activity log
"""

import logging
from flask import Blueprint, request
from flask_login import current_user
from sqlalchemy import or_
from models import db, User, ActivityLog, USER_ROLES
from utils.activity_logger import log_activity
from utils.decorators import admin_required
from utils.helpers import ApiError, get_json_body, paginate_query, parse_bool, success_response, error_response

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__)

MIN_PASSWORD_LENGTH = 6


def _get_user_or_404(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise ApiError('User not found', 404)
    return user


def _check_role_change(role):
    if role not in USER_ROLES:
        raise ApiError('Invalid role')
    if role != 'user' and not current_user.is_super_admin:
        raise ApiError('Only a Super Admin can grant admin roles', 403)


def _is_self(user):
    return current_user.kind == 'user' and current_user.id == user.id


def _check_can_manage(user, action):
    """Admin accounts other than your own can only be managed by a super-admin"""
    if user.role != 'user' and not current_user.is_super_admin and not _is_self(user):
        raise ApiError(f'Only a Super Admin can {action} admin accounts', 403)


# ==========================================
# USERS
# ==========================================

@admin_bp.route('/api/admin/users', methods=['GET'])
@admin_required
def list_users():
    query = User.query
    search = request.args.get('search', '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(User.email.ilike(pattern), User.name.ilike(pattern),
                                 User.username.ilike(pattern)))
    role = request.args.get('role')
    if role:
        query = query.filter_by(role=role)

    users = query.order_by(User.created_at.desc(), User.id.desc()).all()
    return success_response([u.to_dict() for u in users])


@admin_bp.route('/api/admin/users', methods=['POST'])
@admin_required
def create_user():
    data = get_json_body()
    email = str(data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    role = data.get('role') or 'user'

    if not email or not password:
        return error_response('Email and password are required', 400)
    if len(password) < MIN_PASSWORD_LENGTH:
        return error_response(f'Password must be at least {MIN_PASSWORD_LENGTH} characters', 400)
    _check_role_change(role)

    username = str(data.get('username') or '').strip().lower() or None
    if User.query.filter_by(email=email).first():
        return error_response('User with this email already exists', 400)
    if username and User.query.filter_by(username=username).first():
        return error_response('Username already taken', 400)

    projects = data.get('allottedProjects') or []
    if not isinstance(projects, list):
        return error_response('allottedProjects must be a list', 400)

    try:
        user = User(
            email=email,
            username=username,
            name=str(data.get('name') or email.split('@')[0]).strip(),
            role=role,
            active=parse_bool(data.get('active'), True),
            can_upload=parse_bool(data.get('canUpload'), True),
            allotted_projects=projects,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()

        log_activity('CREATE', 'USER', f'Created {role} account {email}', entity_id=user.id)
        return success_response(user.to_dict(), 201, message='User created successfully')

    except Exception as e:
        logger.error(f"Error creating user: {e}")
        db.session.rollback()
        return error_response('Failed to create user', 500)


@admin_bp.route('/api/admin/users/<int:user_id>', methods=['GET'])
@admin_required
def get_user(user_id):
    return success_response(_get_user_or_404(user_id).to_dict())


@admin_bp.route('/api/admin/users/<int:user_id>', methods=['PUT'])
@admin_required
def update_user(user_id):
    user = _get_user_or_404(user_id)
    data = get_json_body()

    _check_can_manage(user, 'edit')

    if 'email' in data:
        email = str(data.get('email') or '').strip().lower()
        if not email:
            return error_response('Email cannot be empty', 400)
        other = User.query.filter_by(email=email).first()
        if other and other.id != user.id:
            return error_response('User with this email already exists', 400)
        user.email = email
    if 'role' in data and data.get('role') != user.role:
        _check_role_change(data.get('role'))
        if _is_self(user):
            return error_response('You cannot change your own role', 400)
        user.role = data.get('role')
    if 'name' in data:
        user.name = str(data.get('name') or user.name).strip()
    if 'username' in data:
        user.username = str(data.get('username') or '').strip().lower() or None
    if 'canUpload' in data:
        user.can_upload = parse_bool(data.get('canUpload'), user.can_upload)
    if 'allottedProjects' in data:
        projects = data.get('allottedProjects') or []
        if not isinstance(projects, list):
            return error_response('allottedProjects must be a list', 400)
        user.allotted_projects = projects

    try:
        db.session.commit()
        log_activity('EDIT', 'USER', f'Updated account {user.email}', entity_id=user.id)
        return success_response(user.to_dict(), message='User updated successfully')
    except Exception as e:
        logger.error(f"Error updating user {user_id}: {e}")
        db.session.rollback()
        return error_response('Failed to update user', 500)


@admin_bp.route('/api/admin/users/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    user = _get_user_or_404(user_id)
    if _is_self(user):
        return error_response('You cannot delete your own account', 400)
    _check_can_manage(user, 'delete')

    try:
        email = user.email
        db.session.delete(user)
        db.session.commit()
        log_activity('DELETE', 'USER', f'Deleted account {email}', entity_id=user_id)
        return success_response(message='User deleted successfully')
    except Exception as e:
        logger.error(f"Error deleting user {user_id}: {e}")
        db.session.rollback()
        return error_response('Failed to delete user', 500)


@admin_bp.route('/api/admin/users/<int:user_id>/toggle-active', methods=['POST'])
@admin_required
def toggle_user_active(user_id):
    user = _get_user_or_404(user_id)
    if _is_self(user):
        return error_response('You cannot deactivate your own account', 400)
    _check_can_manage(user, 'deactivate')

    try:
        user.active = not user.active
        db.session.commit()
        state = 'activated' if user.active else 'deactivated'
        log_activity('TOGGLE_STATUS', 'USER', f'Account {user.email} {state}', entity_id=user.id)
        return success_response(user.to_dict(), message=f'User {state}')
    except Exception as e:
        logger.error(f"Error toggling user {user_id}: {e}")
        db.session.rollback()
        return error_response('Failed to update user', 500)


@admin_bp.route('/api/admin/users/<int:user_id>/toggle-upload', methods=['POST'])
@admin_required
def toggle_user_upload(user_id):
    user = _get_user_or_404(user_id)
    _check_can_manage(user, 'change upload access for')
    try:
        user.can_upload = not user.can_upload
        db.session.commit()
        state = 'enabled' if user.can_upload else 'disabled'
        log_activity('TOGGLE_STATUS', 'USER', f'Upload access {state} for {user.email}', entity_id=user.id)
        return success_response(user.to_dict(), message=f'Upload access {state}')
    except Exception as e:
        logger.error(f"Error toggling upload for user {user_id}: {e}")
        db.session.rollback()
        return error_response('Failed to update user', 500)


@admin_bp.route('/api/admin/users/<int:user_id>/reset-password', methods=['POST'])
@admin_required
def reset_user_password(user_id):
    user = _get_user_or_404(user_id)
    _check_can_manage(user, 'reset passwords of')
    new_password = get_json_body().get('newPassword') or ''
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return error_response(f'New password must be at least {MIN_PASSWORD_LENGTH} characters', 400)

    try:
        user.set_password(new_password)
        db.session.commit()
        log_activity('EDIT', 'USER', f'Password reset for {user.email}', entity_id=user.id)
        return success_response(message='Password reset successfully')
    except Exception as e:
        logger.error(f"Error resetting password for user {user_id}: {e}")
        db.session.rollback()
        return error_response('Failed to reset password', 500)


# ==========================================
# ACTIVITY LOG
# ==========================================

@admin_bp.route('/api/admin/logs', methods=['GET'])
@admin_required
def activity_logs():
    query = ActivityLog.query
    filters = (('userId', ActivityLog.user_id), ('projectId', ActivityLog.project_id),
               ('action', ActivityLog.action), ('entityType', ActivityLog.entity_type))
    for arg, column in filters:
        value = request.args.get(arg)
        if value:
            query = query.filter(column == value)

    logs, pagination = paginate_query(
        query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()),
        default_limit=50, max_limit=200
    )
    return success_response([entry.to_dict() for entry in logs], pagination=pagination)
