# utils/decorators.py
"""
Custom decorators for access control on the JSON API
"""

from functools import wraps
from flask import jsonify
from flask_login import current_user


def auth_required(f):
    """
    Decorator to require any authenticated caller (view access)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': 'Authentication required'}), 401

        return f(*args, **kwargs)

    return decorated_function


def role_required(roles, message):
    """
    Decorator to require the caller's role to be one of roles
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'error': 'Authentication required'}), 401

            if current_user.auth_role not in roles:
                return jsonify({'error': message}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def admin_required(f):
    """
    Decorator to require admin or super-admin access
    """
    return role_required(('admin', 'super-admin'), 'Admin access required')(f)


def super_admin_required(f):
    """
    Decorator to require super-admin access
    """
    return role_required(('super-admin',), 'Super Admin access required')(f)


def upload_permission_required(f):
    """
    Decorator for upload routes: admins anywhere, users with upload access
    enabled, and employees
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': 'Authentication required'}), 401

        role = current_user.auth_role
        if role == 'user' and not current_user.can_upload:
            return jsonify({'error': 'Upload permission required'}), 403
        if role not in ('super-admin', 'admin', 'user', 'employee'):
            return jsonify({'error': 'Upload permission required'}), 403

        return f(*args, **kwargs)

    return decorated_function


def project_head_required(f):
    """
    Decorator for project head (site login) routes
    """
    return role_required(('project',), 'Project head / site access required')(f)
