# app.py
"""
Main application file for the Workforce HR backend
Application factory, authentication loader, error handlers and health check
"""

import os
import logging
from datetime import datetime

from flask import Flask, jsonify
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException

# IMPORTANT: Import db from models FIRST before anything else
from models import db, User, Employee, ProjectHead
from config import get_config
from extensions import login_manager, migrate, cors, limiter
from utils.helpers import ApiError
from utils.tokens import extract_bearer_token, verify_token

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


ACCOUNT_MODELS = {'user': User, 'employee': Employee, 'project': ProjectHead}


def load_account(kind, account_id):
    """Active User, Employee or ProjectHead for a token payload, else None"""
    model = ACCOUNT_MODELS.get(kind)
    if model is None:
        return None
    try:
        account = db.session.get(model, int(account_id))
    except (TypeError, ValueError):
        return None
    if account is None or not account.is_active:
        return None
    return account


@login_manager.request_loader
def load_user_from_request(req):
    token = extract_bearer_token(req.headers.get('Authorization'))
    if not token:
        return None
    payload = verify_token(token)
    if not payload:
        return None
    try:
        return load_account(payload.get('kind'), payload.get('id'))
    except Exception as e:
        logger.error(f"Error loading user from token: {e}")
        db.session.rollback()
        return None


def register_blueprints(app):
    from blueprints.auth import auth_bp
    from blueprints.employees import employees_bp
    from blueprints.uploads import uploads_bp
    from blueprints.attendance import attendance_bp
    from blueprints.reports import reports_bp
    from blueprints.sheets import sheets_bp
    from blueprints.formats import formats_bp
    from blueprints.picks import picks_bp
    from blueprints.created_files import created_files_bp
    from blueprints.admin import admin_bp
    from blueprints.projects import projects_bp

    for blueprint in (auth_bp, employees_bp, uploads_bp, attendance_bp, reports_bp,
                      sheets_bp, formats_bp, picks_bp, created_files_bp, admin_bp, projects_bp):
        app.register_blueprint(blueprint)
        logger.info(f"Registered blueprint {blueprint.name}")


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        db.session.rollback()
        return error.to_response()

    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify({'error': 'Rate limit exceeded', 'message': str(e.description)}), 429

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({'error': 'File too large (max 16MB)'}), 413

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Endpoint not found'}), 404

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'error': error.description or error.name}), error.code

    @app.errorhandler(OperationalError)
    def handle_db_operational_error(error):
        logger.error(f"Database operational error: {error}")
        db.session.rollback()
        return jsonify({'error': 'Database connection error. Please try again.'}), 500

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'error': 'Internal server error'}), 500


def create_app(config_class=None):
    """Create and configure the Flask application"""
    app = Flask(__name__)
    app.config.from_object(config_class or get_config())

    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    cors.init_app(app, origins=app.config.get('CORS_ORIGINS', '*'))
    limiter.init_app(app)

    register_blueprints(app)
    register_error_handlers(app)

    @app.route('/health')
    def health_check():
        """Health check endpoint"""
        try:
            with db.engine.connect() as conn:
                conn.execute(text('SELECT 1'))

            return jsonify({
                'status': 'healthy',
                'database': 'connected',
                'timestamp': datetime.utcnow().isoformat()
            }), 200
        except Exception as e:
            return jsonify({
                'status': 'unhealthy',
                'database': 'disconnected',
                'error': str(e),
                'timestamp': datetime.utcnow().isoformat()
            }), 503

    with app.app_context():
        db.create_all()

    return app


if __name__ == '__main__':
    app = create_app()
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_ENV') == 'development'
    app.run(host='0.0.0.0', port=port, debug=debug)
