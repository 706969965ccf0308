# extensions.py
"""
Flask extension instances, bound to the app in create_app()
"""

from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate

login_manager = LoginManager()
migrate = Migrate()
cors = CORS()

# Setup rate limiting (storage and enable flag come from app config)
limiter = Limiter(key_func=get_remote_address)
