import pytest
from models import TierEnum, Product, ProductFeature, UserSubscription, SubscriptionStatusEnum


@pytest.fixture
def admin(make_user, login):
    """A logged-in admin user."""
    user = make_user(email='admin@example.com', role='admin')
    login(user)
    return user


def test_admin_api_requires_login(client, db):
    assert client.get('/admin/api/users').status_code == 401


def test_admin_api_requires_admin_role(client, make_user, login):
    login(make_user(role='user'))
    assert client.get('/admin/api/users').status_code == 403
    assert client.post('/admin/api/products', json={'key': 'X', 'name': 'X', 'price': 1}).status_code == 403


def test_list_users_with_active_subscription(client, admin, make_user, make_product):
    member = make_user(email='member@example.com')
    product = make_product('PRO_MONTHLY')
    client.post(f'/admin/api/users/{member.id}/plan', json={'productId': product.id})

    users = {u['email']: u for u in client.get('/admin/api/users').get_json()['users']}
    assert users['member@example.com']['activeSubscription']['product']['key'] == 'PRO_MONTHLY'
    assert users['admin@example.com']['activeSubscription'] is None


def test_reset_ai_usage(client, db, admin, make_user):
    member = make_user(ai_usage_count=5)
    assert client.post(f'/admin/api/users/{member.id}/reset-ai').status_code == 200
    db.session.expire_all()
    assert member.ai_usage_count == 0
    assert client.post('/admin/api/users/9999/reset-ai').status_code == 404


def test_update_tier(client, db, admin, make_user):
    member = make_user()
    response = client.put(f'/admin/api/users/{member.id}/tier', json={'tier': 'TEAM'})
    assert response.status_code == 200
    db.session.expire_all()
    assert member.tier == TierEnum.TEAM
    assert client.put(f'/admin/api/users/{member.id}/tier', json={'tier': 'GOLD'}).status_code == 400


def test_update_role(client, db, admin, make_user):
    member = make_user()
    assert client.put(f'/admin/api/users/{member.id}/role', json={'role': 'admin'}).status_code == 200
    db.session.expire_all()
    assert member.role == 'admin'
    # Admins cannot demote themselves.
    assert client.put(f'/admin/api/users/{admin.id}/role', json={'role': 'user'}).status_code == 400


def test_assign_and_revoke_plan(client, db, admin, make_user, make_product):
    member = make_user()
    product = make_product('TEAM_MONTHLY', features={'AI_PLAN': {'enabled': True}})

    response = client.post(f'/admin/api/users/{member.id}/plan', json={'productId': product.id})
    assert response.status_code == 201
    assert response.get_json()['subscription']['provider'] == 'manual_cms_grant'
    db.session.expire_all()
    assert member.tier == TierEnum.TEAM

    response = client.delete(f'/admin/api/users/{member.id}/plan')
    assert response.status_code == 200
    db.session.expire_all()
    assert member.tier == TierEnum.FREE
    assert UserSubscription.query.filter_by(user_id=member.id, status=SubscriptionStatusEnum.ACTIVE).count() == 0


def test_assign_unknown_product(client, admin, make_user):
    member = make_user()
    response = client.post(f'/admin/api/users/{member.id}/plan', json={'productId': 999})
    assert response.status_code == 404


def test_create_and_list_products(client, admin):
    response = client.post('/admin/api/products', json={
        'key': 'PRO_YEARLY', 'name': 'Pro (Yearly)', 'price': 199900, 'description': 'Yearly plan',
    })
    assert response.status_code == 201
    assert response.get_json()['product']['currency'] == 'INR'

    duplicate = client.post('/admin/api/products', json={'key': 'PRO_YEARLY', 'name': 'Again', 'price': 1})
    assert duplicate.status_code == 409
    invalid = client.post('/admin/api/products', json={'key': 'pro yearly', 'name': 'Bad', 'price': 1})
    assert invalid.status_code == 400

    keys = [p['key'] for p in client.get('/admin/api/products').get_json()['products']]
    assert keys == ['PRO_YEARLY']


def test_deactivate_product_hides_it_from_catalog(client, db, admin, make_product):
    product = make_product('PRO_MONTHLY')
    assert client.post(f'/admin/api/products/{product.id}/deactivate').status_code == 200
    assert client.get('/api/billing/products').get_json()['products'] == []
    # Still visible to admins.
    assert len(client.get('/admin/api/products').get_json()['products']) == 1
    assert db.session.get(Product, product.id) is not None


def test_feature_management(client, db, admin, make_product):
    product = make_product('PRO_MONTHLY')
    assert client.post('/admin/api/features', json={'key': 'MAX_PLAN_DAYS', 'description': 'Longest plan'}).status_code == 200

    url = f'/admin/api/products/{product.id}/features/MAX_PLAN_DAYS'
    response = client.put(url, json={'value': {'value': 90}})
    assert response.status_code == 200
    assert response.get_json() == {'key': 'MAX_PLAN_DAYS', 'value': {'value': 90}}

    assert client.put(url, json={'value': {'value': 60}}).status_code == 200
    assert ProductFeature.query.filter_by(product_id=product.id).one().value == {'value': 60}

    assert client.put(url, json={'value': 'lots'}).status_code == 400
    assert client.put(url, json={}).status_code == 400
    assert client.put(f'/admin/api/products/{product.id}/features/bad-key', json={'value': True}).status_code == 400

    assert client.delete(url).status_code == 200
    assert client.delete(url).status_code == 404
    assert ProductFeature.query.count() == 0


def test_orders_ledger(client, admin, make_user, make_product, make_order):
    member = make_user(email='buyer@example.com')
    product = make_product('PRO_MONTHLY')
    make_order(member, product, 'order_1')
    make_order(member, product, 'order_2')

    orders = client.get('/admin/api/orders').get_json()['orders']
    assert [o['providerOrderId'] for o in orders] == ['order_2', 'order_1']
    assert orders[0]['userEmail'] == 'buyer@example.com'
    assert orders[0]['productKey'] == 'PRO_MONTHLY'
    assert len(client.get('/admin/api/orders?limit=1').get_json()['orders']) == 1
