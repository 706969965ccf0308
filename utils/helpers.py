# utils/helpers.py
"""
Helper functions shared by the API blueprints
Response shapes, pagination, request parsing and caller identity
"""

import math
import logging
from flask import jsonify, request, current_app
from flask_login import current_user

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised by handlers and helpers; rendered as {'error': message}"""

    def __init__(self, message, status_code=400, **extra):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.extra = extra

    def to_response(self):
        body = {'error': self.message}
        body.update(self.extra)
        return jsonify(body), self.status_code


def success_response(data=None, status=200, **extra):
    body = {'success': True}
    if data is not None:
        body['data'] = data
    body.update(extra)
    return jsonify(body), status


def error_response(message, status=400, **extra):
    body = {'error': message}
    body.update(extra)
    return jsonify(body), status


def get_json_body():
    """Request JSON as a dict; malformed or missing bodies become {}"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def parse_bool(value, default=None):
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'y', 'active')


def parse_int(value, field_name, minimum=None):
    """Parse an integer request value or raise a 400"""
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ApiError(f'{field_name} must be an integer')
    if minimum is not None and number < minimum:
        raise ApiError(f'{field_name} must be >= {minimum}')
    return number


def get_pagination_args(default_limit=50, max_limit=500):
    page = max(request.args.get('page', 1, type=int) or 1, 1)
    limit = request.args.get('limit', default_limit, type=int) or default_limit
    limit = min(max(limit, 1), max_limit)
    return page, limit


def paginate_query(query, default_limit=50, max_limit=500):
    """
    Apply page/limit query args to a SQLAlchemy query
    Returns (items, pagination dict)
    """
    page, limit = get_pagination_args(default_limit, max_limit)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    pagination = {
        'page': page,
        'limit': limit,
        'total': total,
        'totalPages': math.ceil(total / limit) if total else 0,
    }
    return items, pagination


def allowed_file(filename):
    """Check if uploaded file has allowed extension"""
    allowed = current_app.config.get('ALLOWED_EXTENSIONS', {'xlsx', 'xls', 'csv'})
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in allowed


def get_uploaded_file(field='file'):
    """Return the uploaded FileStorage for field or raise a 400"""
    file = request.files.get(field)
    if file is None or not file.filename:
        raise ApiError('No file provided')
    if not allowed_file(file.filename):
        raise ApiError('Invalid file type. Please upload .xlsx, .xls or .csv')
    return file


def caller_ref():
    """Stable string reference for the current caller, e.g. 'user:3'"""
    if not current_user.is_authenticated:
        return 'anonymous'
    return current_user.get_id()
