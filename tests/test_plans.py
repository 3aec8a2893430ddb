import pytest
from datetime import date

from models import TierEnum, Plan, Task
from services import plans as plan_service
from services.errors import EntitlementLimitExceeded, NotFound


def test_create_plan(db, make_user):
    user = make_user()
    plan = plan_service.create_plan(user.id, 'Exam prep', start_date='2024-03-01', end_date='2024-03-07')
    assert plan.start_date == date(2024, 3, 1)
    assert plan.end_date == date(2024, 3, 7)
    assert plan_service.format_plan(plan)['tasks'] == []


def test_create_plan_respects_count_limit(db, make_user):
    user = make_user(tier=TierEnum.FREE)
    for i in range(3):
        plan_service.create_plan(user.id, f'Plan {i}')
    with pytest.raises(EntitlementLimitExceeded):
        plan_service.create_plan(user.id, 'One too many')
    assert Plan.query.filter_by(user_id=user.id).count() == 3


def test_create_plan_respects_duration_limit(db, make_user):
    user = make_user(tier=TierEnum.FREE) # 7 days max.
    plan_service.create_plan(user.id, 'A week', start_date='2024-03-01', end_date='2024-03-07')
    with pytest.raises(EntitlementLimitExceeded) as excinfo:
        plan_service.create_plan(user.id, 'Eight days', start_date='2024-03-01', end_date='2024-03-08')
    assert 'limit of 7 days' in excinfo.value.message


def test_create_plan_rejects_inverted_dates(db, make_user):
    with pytest.raises(ValueError):
        plan_service.create_plan(make_user().id, 'Backwards', start_date='2024-03-07', end_date='2024-03-01')


def test_get_plan_enforces_ownership(db, make_user):
    owner = make_user()
    other = make_user()
    plan = plan_service.create_plan(owner.id, 'Mine')
    assert plan_service.get_plan(owner.id, plan.id).id == plan.id
    with pytest.raises(NotFound):
        plan_service.get_plan(other.id, plan.id)


def test_delete_plan_enforces_ownership(db, make_user):
    owner = make_user()
    other = make_user()
    plan = plan_service.create_plan(owner.id, 'Mine')
    assert plan_service.delete_plan(other.id, plan.id) is False
    assert plan_service.delete_plan(owner.id, plan.id) is True
    assert Plan.query.count() == 0


def test_list_plans_newest_first(db, make_user):
    user = make_user(tier=TierEnum.PRO)
    first = plan_service.create_plan(user.id, 'First')
    second = plan_service.create_plan(user.id, 'Second')
    assert [p.id for p in plan_service.list_plans(user.id)] == [second.id, first.id]


def test_import_plan_maps_rows(db, make_user):
    user = make_user()
    rows = [
        {'Task Title': 'Read chapter 1', 'Date': '2024-03-01', 'Notes': 'Skim first', 'Priority': 'High', 'Expected Hours': 2},
        {'title': 'Practice set', 'date': '2024-03-03', 'Description': 'Odd numbers', 'Estimated Time (min)': 45},
        {'Date': '2024-03-02'},
    ]
    plan = plan_service.import_plan(user.id, 'Imported', rows)

    assert plan.start_date == date(2024, 3, 1)
    assert plan.end_date == date(2024, 3, 3)
    tasks = {t.title: t for t in plan.tasks}
    assert tasks['Read chapter 1'].estimated_minutes == 120 # Hours under 10 become minutes.
    assert tasks['Read chapter 1'].description == 'Skim first'
    assert tasks['Read chapter 1'].priority == 'High'
    assert tasks['Practice set'].estimated_minutes == 45
    assert tasks['Practice set'].description == 'Odd numbers'
    assert tasks['Untitled'].date == date(2024, 3, 2)
    assert all(t.status == 'Pending' and t.user_id == user.id for t in plan.tasks)


def test_import_plan_duration_limit(db, make_user):
    user = make_user(tier=TierEnum.FREE)
    rows = [{'Task Title': 'Start', 'Date': '2024-03-01'}, {'Task Title': 'End', 'Date': '2024-03-08'}]
    with pytest.raises(EntitlementLimitExceeded):
        plan_service.import_plan(user.id, 'Too long', rows)
    assert Plan.query.count() == 0
    assert Task.query.count() == 0


def test_import_plan_count_limit(db, make_user):
    user = make_user(tier=TierEnum.FREE)
    for i in range(3):
        plan_service.create_plan(user.id, f'Plan {i}')
    with pytest.raises(EntitlementLimitExceeded):
        plan_service.import_plan(user.id, 'Fourth', [])


def test_import_plan_bad_date_writes_nothing(db, make_user):
    user = make_user()
    rows = [{'Task Title': 'Fine', 'Date': '2024-03-01'}, {'Task Title': 'Broken', 'Date': 'someday'}]
    with pytest.raises(ValueError):
        plan_service.import_plan(user.id, 'Broken import', rows)
    assert Plan.query.count() == 0
