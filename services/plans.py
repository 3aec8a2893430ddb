"""
Plans and their tasks.

Every creation path (manual create and JSON import) checks the plan-count and
plan-duration entitlements before writing anything.
"""
from flask import current_app

from extensions import db
from models import Plan, Task
from services import entitlements
from services.errors import NotFound, EntitlementLimitExceeded
from utils.helpers import parse_date, plan_span_days, estimated_minutes_from, first_present


def format_task(task):
    return {
        'id': task.id,
        'title': task.title,
        'description': task.description,
        'date': task.date.isoformat() if task.date else None,
        'priority': task.priority,
        'estimatedMinutes': task.estimated_minutes,
        'status': task.status,
    }


def format_plan(plan, include_tasks=True):
    data = {
        'id': plan.id,
        'title': plan.title,
        'description': plan.description,
        'startDate': plan.start_date.isoformat() if plan.start_date else None,
        'endDate': plan.end_date.isoformat() if plan.end_date else None,
        'createdAt': plan.created_at.isoformat() if plan.created_at else None,
    }
    if include_tasks:
        data['tasks'] = [format_task(task) for task in plan.tasks]
    return data


def list_plans(user_id):
    """All plans of a user, newest first."""
    return Plan.query.filter_by(user_id=user_id).order_by(Plan.created_at.desc(), Plan.id.desc()).all()


def get_plan(user_id, plan_id):
    """
    Returns one of the user's plans.

    Raises:
        NotFound: If the plan does not exist or belongs to someone else.
    """
    plan = Plan.query.filter_by(id=plan_id, user_id=user_id).first()
    if plan is None:
        raise NotFound("Plan not found")
    return plan


def assert_duration_allowed(user_id, dates):
    """Raises EntitlementLimitExceeded if dates span more days than the user's plans may."""
    max_days = entitlements.get_max_plan_days(user_id)
    if plan_span_days(dates) > max_days:
        raise EntitlementLimitExceeded(
            f"Plan exceeds your limit of {max_days} days. Please upgrade to create longer plans."
        )


def create_plan(user_id, title, description=None, start_date=None, end_date=None):
    """
    Creates an empty plan.

    Raises:
        EntitlementLimitExceeded: If the user is at their plan limit or the date range is too long.
        ValueError: If a date is malformed or end_date precedes start_date.
    """
    entitlements.assert_plan_creation_allowed(user_id)

    start = parse_date(start_date)
    end = parse_date(end_date)
    if start and end:
        if end < start:
            raise ValueError("End date cannot be before start date.")
        assert_duration_allowed(user_id, [start, end])

    plan = Plan(user_id=user_id, title=title, description=description or None, start_date=start, end_date=end)
    db.session.add(plan)
    db.session.commit()
    current_app.logger.info(f"Plan {plan.id} created for user {user_id}.")
    return plan


def delete_plan(user_id, plan_id):
    """Deletes a plan owned by the user. Returns False if there was no such plan."""
    plan = Plan.query.filter_by(id=plan_id, user_id=user_id).first()
    if plan is None:
        return False
    db.session.delete(plan)
    db.session.commit()
    current_app.logger.info(f"Plan {plan_id} deleted by user {user_id}.")
    return True


def _task_from_row(row, plan, user_id):
    """Maps one imported row (spreadsheet or AI output) to a Task."""
    return Task(
        plan=plan,
        user_id=user_id,
        title=str(first_present(row, 'Task Title', 'title') or 'Untitled'),
        description=first_present(row, 'Notes', 'Description'),
        date=parse_date(first_present(row, 'Date', 'date')),
        priority=first_present(row, 'Priority'),
        estimated_minutes=estimated_minutes_from(first_present(row, 'Expected Hours', 'Estimated Time (min)')),
        status='Pending',
    )


def import_plan(user_id, plan_name, rows):
    """
    Creates a plan together with its tasks from a list of row dicts.

    The plan and all tasks are committed together or not at all.

    Args:
        user_id (int): Owner of the new plan.
        plan_name (str): Title of the new plan.
        rows (list of dict): Task rows, keyed by column header.

    Raises:
        EntitlementLimitExceeded: Plan limit reached, or the task dates span too many days.
        ValueError: If a row is not an object or carries an unparseable date.
    """
    entitlements.assert_plan_creation_allowed(user_id)

    for row in rows:
        if not isinstance(row, dict):
            raise ValueError("Each task row must be an object.")
    dates = [parse_date(first_present(row, 'Date', 'date')) for row in rows]
    assert_duration_allowed(user_id, dates)

    try:
        plan = Plan(user_id=user_id, title=plan_name)
        db.session.add(plan)
        for row in rows:
            db.session.add(_task_from_row(row, plan, user_id))

        present = [d for d in dates if d is not None]
        if present:
            plan.start_date, plan.end_date = min(present), max(present)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Plan import failed for user {user_id}: {e}", exc_info=True)
        raise

    current_app.logger.info(f"Plan {plan.id} imported for user {user_id} with {len(rows)} task(s).")
    return plan
