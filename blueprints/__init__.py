# blueprints/__init__.py
"""
API blueprints, registered by app.register_blueprints
"""
