"""
AI usage metering.

The counter lives on User.ai_usage_count and only moves through these functions:
increments are single atomic UPDATE statements (no read-modify-write in Python), and a
reset is the only way it goes down. Limits are not enforced here; see
services.entitlements.can_use_ai_generation.
"""
from flask import current_app

from extensions import db
from models import User
from services.errors import NotFound


def increment_ai_usage(user_id):
    """
    Atomically adds one to the user's AI usage counter.

    Args:
        user_id (int): The user whose counter is incremented.

    Raises:
        NotFound: If no user row was updated.
    """
    updated = User.query.filter_by(id=user_id).update(
        {User.ai_usage_count: User.ai_usage_count + 1},
        synchronize_session=False,
    )
    if not updated:
        db.session.rollback()
        raise NotFound(f"User {user_id} not found.")
    db.session.commit()
    current_app.logger.info(f"AI usage incremented for user {user_id}.")


def reset_ai_usage(user_id):
    """Sets the user's AI usage counter back to zero. Safe to repeat."""
    updated = User.query.filter_by(id=user_id).update(
        {User.ai_usage_count: 0},
        synchronize_session=False,
    )
    if not updated:
        db.session.rollback()
        raise NotFound(f"User {user_id} not found.")
    db.session.commit()
    current_app.logger.info(f"AI usage reset to 0 for user {user_id}.")
