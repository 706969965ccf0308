# config.py
"""
Application configuration for the Workforce HR backend
Database, upload and token settings are read from the environment
"""

import os
import tempfile
from sqlalchemy.pool import NullPool

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _database_url():
    database_url = os.environ.get('DATABASE_URL')
    if database_url and database_url.startswith('postgres://'):
        database_url = database_url.replace('postgres://', 'postgresql://', 1)
    return database_url


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-me')

    # Database
    SQLALCHEMY_DATABASE_URI = _database_url() or 'sqlite:///workforce.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    if _database_url():
        SQLALCHEMY_ENGINE_OPTIONS = {
            'pool_pre_ping': True,
            'pool_recycle': 300,
            'poolclass': NullPool,
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {}

    # File uploads
    ALLOWED_EXTENSIONS = {'xlsx', 'xls', 'csv'}
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024
    if os.environ.get('RENDER'):
        UPLOAD_FOLDER = '/tmp/upload_files'
    else:
        UPLOAD_FOLDER = os.path.join(BASE_DIR, 'upload_files')

    # Bearer tokens (seconds)
    TOKEN_MAX_AGE = int(os.environ.get('TOKEN_MAX_AGE', 7 * 24 * 3600))

    # Rate limiting
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    LOGIN_RATE_LIMIT = os.environ.get('LOGIN_RATE_LIMIT', '10 per minute')

    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')


class DevelopmentConfig(Config):
    DEBUG = True


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'testing-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    UPLOAD_FOLDER = os.path.join(tempfile.gettempdir(), 'workforce_test_uploads')


class ProductionConfig(Config):
    DEBUG = False


config_by_name = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}


def get_config(name=None):
    """Pick a config class from FLASK_ENV (defaults to development)"""
    name = name or os.environ.get('FLASK_ENV', 'development')
    return config_by_name.get(name, DevelopmentConfig)
