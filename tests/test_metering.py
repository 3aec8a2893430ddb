import pytest

from models import TierEnum
from services.entitlements import can_use_ai_generation
from services.errors import NotFound
from services.metering import increment_ai_usage, reset_ai_usage


def test_increment_ai_usage(db, make_user):
    user = make_user()
    increment_ai_usage(user.id)
    increment_ai_usage(user.id)
    db.session.expire_all() # The UPDATE bypasses the identity map.
    assert user.ai_usage_count == 2


def test_increment_unknown_user(db):
    with pytest.raises(NotFound):
        increment_ai_usage(4242)


def test_reset_ai_usage_is_idempotent(db, make_user):
    user = make_user(ai_usage_count=7)
    reset_ai_usage(user.id)
    reset_ai_usage(user.id)
    db.session.expire_all()
    assert user.ai_usage_count == 0


def test_reset_unknown_user(db):
    with pytest.raises(NotFound):
        reset_ai_usage(4242)


def test_free_user_gate_closes_after_one_generation(db, make_user):
    user = make_user(tier=TierEnum.FREE)
    assert can_use_ai_generation(user.id) is True
    increment_ai_usage(user.id)
    db.session.expire_all()
    assert can_use_ai_generation(user.id) is False

    reset_ai_usage(user.id)
    db.session.expire_all()
    assert can_use_ai_generation(user.id) is True
