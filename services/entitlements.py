"""
Entitlement resolution.

Answers "what may this user do right now?" by building a Feature Map (feature key ->
payload) from one of two sources, never both:

1. the active subscription's product features, when the user has one;
2. otherwise the static legacy table keyed by the user's flat tier.

Everything here is a read: no writes, no locks, no caching. Callers that consume a
resource after a successful check (AI generation, plan creation) do the write
themselves.
"""
import copy
import math
from collections import namedtuple

from extensions import db
from models import User, TierEnum, UserSubscription, SubscriptionStatusEnum, Plan
from services.errors import NotFound, EntitlementLimitExceeded

# --- Feature keys ---
AI_PLAN = 'AI_PLAN'
AI_GEN_LIMIT = 'AI_GEN_LIMIT'
MAX_PLANS = 'MAX_PLANS'
MAX_PLAN_DAYS = 'MAX_PLAN_DAYS'

# --- Defaults used when neither the product nor the tier table decides ---
DEFAULT_MAX_PLANS = 3
FREE_AI_GENERATIONS = 1       # Single trial generation on the free tier.
LEGACY_AI_CEILING = 100       # "Unlimited" AI for paid users, bounded on purpose.
FREE_MAX_PLAN_DAYS = 7
DEFAULT_MAX_PLAN_DAYS = 30

# Static entitlements for accounts without an active subscription.
LEGACY_ENTITLEMENTS = {
    TierEnum.FREE: {'max_plans': 3, 'ai_generation': False},
    TierEnum.PRO: {'max_plans': math.inf, 'ai_generation': True},
    TierEnum.TEAM: {'max_plans': math.inf, 'ai_generation': True},
}

UNBOUNDED_SENTINELS = ('infinity', 'infinite')


# --- Feature payload variants ---
BooleanFeature = namedtuple('BooleanFeature', ['enabled'])
LimitFeature = namedtuple('LimitFeature', ['value', 'enabled'])
UnknownFeature = namedtuple('UnknownFeature', ['raw'])


def _as_number(raw, allow_unbounded=False):
    """Returns raw as an int/float, math.inf for the unbounded sentinels (if allowed), else None."""
    if isinstance(raw, bool): # bool is an int subclass; a flag is not a limit.
        return None
    if isinstance(raw, (int, float)):
        return None if math.isnan(raw) else raw
    if allow_unbounded and isinstance(raw, str):
        text = raw.strip().lower()
        if text in UNBOUNDED_SENTINELS:
            return math.inf
        try:
            return int(text)
        except ValueError:
            return None
    return None


def decode_feature(payload):
    """
    Decodes a stored feature payload into BooleanFeature, LimitFeature or UnknownFeature.

    Accepted shapes:
        True / False                      -> BooleanFeature
        {"enabled": bool}                 -> BooleanFeature
        {"value": number, "enabled": ...} -> LimitFeature
        {"limit": number | "Infinity"}    -> LimitFeature (math.inf when unbounded)

    An explicit boolean "enabled" survives a malformed value or limit next to it and
    decodes to BooleanFeature. Anything else decodes to UnknownFeature so callers fall
    through to their defaults instead of raising.
    """
    if isinstance(payload, bool):
        return BooleanFeature(enabled=payload)
    if not isinstance(payload, dict):
        return UnknownFeature(raw=payload)

    enabled = payload.get('enabled', True)
    if not isinstance(enabled, bool):
        return UnknownFeature(raw=payload)

    if 'value' in payload:
        number = _as_number(payload['value'])
    elif 'limit' in payload:
        number = _as_number(payload['limit'], allow_unbounded=True)
    else:
        number = None

    if number is not None:
        return LimitFeature(value=number, enabled=enabled)
    if 'enabled' in payload:
        return BooleanFeature(enabled=enabled)
    return UnknownFeature(raw=payload)


def numeric_value(payload):
    """
    Returns the finite number stored under "value", else None.

    MAX_PLAN_DAYS and AI_GEN_LIMIT are read this way only: a "limit" entry or an
    unbounded sentinel does not count for them.
    """
    if not isinstance(payload, dict):
        return None
    value = _as_number(payload.get('value'))
    if value is None or not math.isfinite(value):
        return None
    return value


def is_enabled(payload):
    """True only for a literal True payload or an explicit {"enabled": true}, whatever sits beside it."""
    if isinstance(payload, dict):
        return payload.get('enabled') is True
    return payload is True


def _json_safe(payload):
    # JSON has no Infinity literal; clients get the same sentinel admins can store.
    if isinstance(payload, dict):
        return {k: _json_safe(v) for k, v in payload.items()}
    if isinstance(payload, float) and math.isinf(payload):
        return 'Infinity'
    return payload


class Entitlements(namedtuple('Entitlements', ['user_id', 'product', 'tier_fallback', 'features'])):
    """
    Resolved entitlements of one user at query time.

    product is the Product backing the features (None on the fallback branch);
    tier_fallback is the TierEnum used by the fallback branch (None when product-backed).
    """
    __slots__ = ()

    def to_dict(self):
        return {
            'userId': self.user_id,
            'product': self.product.to_dict() if self.product is not None else None,
            'tierFallback': self.tier_fallback.value if self.tier_fallback is not None else None,
            'features': _json_safe(self.features),
        }


def get_active_subscription(user_id):
    """
    Returns the user's current entitling subscription (active or trialing), or None.

    If more than one somehow exists, the one with the latest current_period_end wins
    (open-ended ones last), then the most recently created.
    """
    return UserSubscription.query.filter(
        UserSubscription.user_id == user_id,
        UserSubscription.status.in_(SubscriptionStatusEnum.entitling()),
    ).order_by(
        UserSubscription.current_period_end.desc().nulls_last(),
        UserSubscription.created_at.desc(),
        UserSubscription.id.desc(),
    ).first()


def _entitlements_from_product(user_id, product):
    features = {}
    for product_feature in product.product_features:
        value = product_feature.value if product_feature.value is not None else {'enabled': True}
        features[product_feature.feature.key] = copy.deepcopy(value)
    return Entitlements(user_id=user_id, product=product, tier_fallback=None, features=features)


def _entitlements_from_tier(user_id, tier):
    legacy = LEGACY_ENTITLEMENTS.get(tier, LEGACY_ENTITLEMENTS[TierEnum.FREE])
    features = {
        AI_PLAN: {'enabled': legacy['ai_generation']},
        MAX_PLANS: {'limit': legacy['max_plans']},
    }
    return Entitlements(user_id=user_id, product=None, tier_fallback=tier, features=features)


def resolve_entitlements(user_id):
    """
    Resolves the Feature Map currently applicable to a user.

    Args:
        user_id (int): ID of an existing user.

    Returns:
        Entitlements: product-backed when an active subscription with a product exists,
                      tier-backed otherwise.

    Raises:
        NotFound: If the user does not exist.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found.")

    subscription = get_active_subscription(user_id)
    if subscription is not None and subscription.product is not None:
        return _entitlements_from_product(user_id, subscription.product)
    return _entitlements_from_tier(user_id, user.tier)


def get_feature(user_id, feature_key):
    """Returns the raw payload the user resolves to for feature_key, or None."""
    return resolve_entitlements(user_id).features.get(feature_key)


def get_max_plan_days(user_id):
    """
    Maximum number of days a single plan may span for this user.

    A numeric MAX_PLAN_DAYS feature wins. Otherwise 7 days on the free tier fallback
    and 30 days for everyone else.
    """
    entitlements = resolve_entitlements(user_id)
    days = numeric_value(entitlements.features.get(MAX_PLAN_DAYS))
    if days is not None:
        # Whole floats (14.0) come back as ints; fractional limits are kept as stored.
        return int(days) if float(days).is_integer() else days

    if entitlements.tier_fallback == TierEnum.FREE:
        return FREE_MAX_PLAN_DAYS
    return DEFAULT_MAX_PLAN_DAYS


def assert_plan_creation_allowed(user_id):
    """
    Checks that the user may create one more plan. Does not create anything.

    The MAX_PLANS limit comes from the Feature Map, then from the legacy tier table,
    then DEFAULT_MAX_PLANS.

    Raises:
        NotFound: If the user does not exist.
        EntitlementLimitExceeded: If the user already owns `limit` plans or more.
    """
    entitlements = resolve_entitlements(user_id)

    limit = None
    feature = decode_feature(entitlements.features.get(MAX_PLANS))
    if isinstance(feature, LimitFeature):
        limit = feature.value

    if limit is None and entitlements.tier_fallback is not None:
        limit = LEGACY_ENTITLEMENTS[entitlements.tier_fallback]['max_plans']

    if limit is None:
        limit = DEFAULT_MAX_PLANS

    if math.isinf(limit):
        return

    plan_count = Plan.query.filter_by(user_id=user_id).count()
    if plan_count >= limit:
        raise EntitlementLimitExceeded("Plan limit reached. Upgrade to create more plans.")


def get_ai_generation_limit(user, entitlements):
    """
    Effective number of AI generations the user may consume before a reset.

    Order: numeric AI_GEN_LIMIT, then an enabled AI_PLAN flag, then a PRO/TEAM tier or a
    "PRO" product key (all LEGACY_AI_CEILING), then FREE_AI_GENERATIONS.
    """
    limit = numeric_value(entitlements.features.get(AI_GEN_LIMIT))
    if limit is not None:
        return limit

    if is_enabled(entitlements.features.get(AI_PLAN)):
        return LEGACY_AI_CEILING

    product_key = entitlements.product.key.upper() if entitlements.product is not None else ''
    if user.tier in (TierEnum.PRO, TierEnum.TEAM) or 'PRO' in product_key:
        return LEGACY_AI_CEILING

    return FREE_AI_GENERATIONS


def can_use_ai_generation(user_id):
    """
    Read-only predicate: True while the user's AI usage is below their effective limit.

    This never increments usage. Callers check, run the generation, then call
    services.metering.increment_ai_usage; two concurrent requests may both pass the check.

    Returns:
        bool: False for unknown users.
    """
    user = db.session.get(User, user_id)
    if user is None:
        return False

    entitlements = resolve_entitlements(user_id)
    return user.ai_usage_count < get_ai_generation_limit(user, entitlements)
