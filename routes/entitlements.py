from flask import Blueprint, jsonify
from flask_login import login_required, current_user

from services.entitlements import resolve_entitlements, get_max_plan_days, can_use_ai_generation

entitlements_bp = Blueprint('entitlements', __name__, url_prefix='/api/entitlements')


@entitlements_bp.route('', methods=['GET'])
@login_required
def get_entitlements():
    """
    Resolved entitlements of the logged-in user: the Feature Map and where it came from,
    plus the derived limits the UI shows.
    """
    entitlements = resolve_entitlements(current_user.id)
    data = entitlements.to_dict()
    data['maxPlanDays'] = get_max_plan_days(current_user.id)
    data['canUseAI'] = can_use_ai_generation(current_user.id)
    data['aiUsageCount'] = current_user.ai_usage_count
    return jsonify(data)
