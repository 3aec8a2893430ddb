import re
from flask import Blueprint, jsonify, current_app
from flask_login import login_required, current_user

from forms import AIPlanForm
from services import ai_client
from services.entitlements import can_use_ai_generation, get_max_plan_days
from services.metering import increment_ai_usage

ai_bp = Blueprint('ai', __name__, url_prefix='/api/ai')

# Matches explicit durations such as "a 60 day plan" or "for 10 days".
DAY_REQUEST_PATTERN = re.compile(r'(\d+)\s*days?', re.IGNORECASE)


@ai_bp.route('/plan', methods=['POST'])
@login_required
def generate_plan():
    """
    Drafts a plan with the AI completion service.

    Order of checks: AI allowance (402 when used up), prompt present (400), explicit
    duration within the user's max plan days (400). Usage is counted only after the
    completion service answered; a failed generation costs nothing.
    """
    if not can_use_ai_generation(current_user.id):
        return jsonify({
            "error": "AI generation limit reached. You have used your available AI generations. Please upgrade to Pro."
        }), 402

    form = AIPlanForm()
    if not form.validate_on_submit():
        return jsonify({"error": form.first_error()}), 400
    prompt = form.prompt_text

    max_days = get_max_plan_days(current_user.id)
    match = DAY_REQUEST_PATTERN.search(prompt)
    if match and int(match.group(1)) > max_days:
        return jsonify({
            "error": f"Your current plan allows maximum {max_days} days. Please request a shorter duration or upgrade."
        }), 400

    try:
        text = ai_client.generate_text(ai_client.build_plan_prompt(prompt, max_days))
    except ai_client.AIGenerationError as e:
        return jsonify({"error": str(e)}), 502

    increment_ai_usage(current_user.id)
    current_app.logger.info(f"AI plan generated for user {current_user.id} (max {max_days} days).")
    return jsonify({"text": text, "maxDays": max_days})
