from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user

from forms import PlanForm
from services import plans as plan_service

# Blueprint for the plans API.
# Limit violations (plan count, plan duration) raise EntitlementLimitExceeded and are
# answered by the application's BillingError handler with a 402.
plans_bp = Blueprint('plans', __name__, url_prefix='/api/plans')


@plans_bp.route('', methods=['GET'])
@login_required
def list_plans():
    plans = plan_service.list_plans(current_user.id)
    return jsonify({"plans": [plan_service.format_plan(p) for p in plans]})


@plans_bp.route('', methods=['POST'])
@login_required
def create_plan():
    """Creates an empty plan, subject to the user's plan-count and plan-duration limits."""
    form = PlanForm()
    if not form.validate_on_submit():
        return jsonify({"error": form.first_error()}), 400

    try:
        plan = plan_service.create_plan(
            current_user.id,
            title=form.title.data.strip(),
            description=form.description.data,
            start_date=form.startDate.data,
            end_date=form.endDate.data,
        )
    except ValueError as e: # Malformed or inverted dates.
        return jsonify({"error": str(e)}), 400
    return jsonify(plan_service.format_plan(plan)), 201


@plans_bp.route('/<int:plan_id>', methods=['GET'])
@login_required
def get_plan(plan_id):
    plan = plan_service.get_plan(current_user.id, plan_id) # NotFound -> 404
    return jsonify(plan_service.format_plan(plan))


@plans_bp.route('/<int:plan_id>', methods=['DELETE'])
@login_required
def delete_plan(plan_id):
    if not plan_service.delete_plan(current_user.id, plan_id):
        return jsonify({"error": "Plan not found"}), 404
    return jsonify({"success": True})


@plans_bp.route('/import-json', methods=['POST'])
@login_required
def import_plan_json():
    """
    Creates a plan from task rows, e.g. a parsed spreadsheet or an AI draft.

    Body: {"planName": str, "tasks": [ {row}, ... ]}. Rows are mapped by the plan service.
    The body is read directly because the rows are nested objects.
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = {}
    plan_name = body.get('planName')
    plan_name = plan_name.strip() if isinstance(plan_name, str) else ''
    tasks = body.get('tasks')

    if not plan_name:
        return jsonify({"error": "Missing planName"}), 400
    if not isinstance(tasks, list):
        return jsonify({"error": "Bad tasks payload"}), 400

    try:
        plan = plan_service.import_plan(current_user.id, plan_name, tasks)
    except ValueError as e:
        current_app.logger.info(f"Rejected plan import for user {current_user.id}: {e}")
        return jsonify({"error": str(e)}), 400
    return jsonify(plan_service.format_plan(plan)), 201
