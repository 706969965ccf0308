# utils/activity_logger.py
"""
Audit trail of admin and upload actions
A failure to record activity never fails the request that triggered it
"""

import logging
from flask_login import current_user
from models import db, ActivityLog

logger = logging.getLogger(__name__)


def log_activity(action, entity_type, description, entity_id=None,
                 project_id=None, details=None):
    """Record an ActivityLog row for the current caller and commit it"""
    try:
        if current_user and current_user.is_authenticated:
            user_id = current_user.get_id()
            user_email = current_user.email
        else:
            user_id = 'system'
            user_email = None

        entry = ActivityLog(
            user_id=user_id,
            user_email=user_email,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            description=description,
            project_id=project_id,
            details=details,
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except Exception as e:
        logger.error(f"Failed to log activity {action} {entity_type}: {e}")
        db.session.rollback()
        return None
