# utils/tokens.py
"""
Signed bearer tokens for API authentication
"""

import logging
from flask import current_app
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

logger = logging.getLogger(__name__)

TOKEN_SALT = 'workforce-auth-token'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def generate_token(account):
    """Issue a token for a User, Employee or ProjectHead"""
    payload = {
        'id': account.id,
        'kind': account.kind,
        'role': account.auth_role,
        'email': account.email,
    }
    if account.kind == 'employee':
        payload['empId'] = account.emp_id
    elif account.kind == 'project':
        payload['projectName'] = account.project_name
    return _serializer().dumps(payload)


def verify_token(token):
    """Return the token payload, or None when invalid or expired"""
    max_age = current_app.config.get('TOKEN_MAX_AGE', 7 * 24 * 3600)
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        logger.info("Rejected expired token")
        return None
    except BadSignature:
        logger.warning("Rejected token with bad signature")
        return None
    if not isinstance(payload, dict) or 'id' not in payload or 'kind' not in payload:
        return None
    return payload


def extract_bearer_token(header_value):
    if not header_value:
        return None
    parts = header_value.split(None, 1)
    if len(parts) != 2 or parts[0].lower() != 'bearer':
        return None
    return parts[1].strip() or None
