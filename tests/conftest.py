import json
import pytest
from app import create_app
from config import Config
from extensions import db as _db # Alias to avoid fixture name conflict
from models import User, TierEnum, Product, Feature, ProductFeature, Order, OrderStatusEnum
from utils.security import compute_signature

class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:' # Use in-memory SQLite for tests
    WTF_CSRF_ENABLED = False # Disable CSRF for form testing convenience
    SECRET_KEY = 'test-secret-key-for-sessions' # Flask-Login keeps the user id in the signed session
    # Fixed provider and identity secrets so signatures can be computed in tests.
    RAZORPAY_KEY_ID = 'rzp_test_key_id'
    RAZORPAY_KEY_SECRET = 'test_key_secret'
    RAZORPAY_WEBHOOK_SECRET = 'test_webhook_secret'
    IDENTITY_JWT_SECRET = 'test-identity-jwt-secret'
    GEMINI_API_KEY = 'test-gemini-key'
    BILLING_GRANT_PERIOD_DAYS = 30
    LOG_LEVEL = 'DEBUG'

@pytest.fixture(scope='session')
def app():
    """
    Session-wide test Flask application.
    Ensures the app is created once per test session with TestConfig.
    """
    app_instance = create_app(config_class=TestConfig)
    return app_instance

@pytest.fixture(scope='function')
def app_context(app):
    """
    Function-scoped application context.
    Pushes an app context before each test that needs it and pops it afterwards.
    Services log through current_app and read their secrets from current_app.config.
    """
    with app.app_context():
        yield

@pytest.fixture(scope='function')
def db(app_context):
    """
    Function-scoped database fixture.
    Creates all database tables before each test and drops them afterwards.
    This ensures a clean database state for each test.
    """
    _db.create_all() # Create tables based on models
    yield _db          # Provide the database object to the test
    _db.session.remove() # Ensure session is closed
    _db.drop_all()     # Drop all tables to clean up

@pytest.fixture(scope='function')
def client(app):
    """
    Test client fixture for making requests to the application.
    Function-scoped so a login (session cookie) never leaks into the next test.
    """
    return app.test_client()


# --- Factories ---

@pytest.fixture
def make_user(db):
    """Creates and commits a user. Usage: make_user(email='a@example.com', tier=TierEnum.PRO)."""
    counter = {'n': 0}

    def _make_user(email=None, tier=TierEnum.FREE, role='user', ai_usage_count=0, name=None):
        counter['n'] += 1
        email = email or f"user{counter['n']}@example.com"
        user = User(
            external_id=f"ext-{email}",
            email=email,
            name=name or email.split('@')[0],
            role=role,
            tier=tier,
            ai_usage_count=ai_usage_count,
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user

@pytest.fixture
def make_product(db):
    """
    Creates and commits a product with optional feature values.
    Usage: make_product('PRO_MONTHLY', 19900, features={'AI_PLAN': {'enabled': True}}).
    """
    def _make_product(key, price=19900, features=None, active=True, currency='INR'):
        product = Product(key=key, name=key.replace('_', ' ').title(), price=price, currency=currency, active=active)
        db.session.add(product)
        db.session.flush()
        for feature_key, value in (features or {}).items():
            feature = Feature.query.filter_by(key=feature_key).first()
            if feature is None:
                feature = Feature(key=feature_key)
                db.session.add(feature)
                db.session.flush()
            db.session.add(ProductFeature(product_id=product.id, feature_id=feature.id, value=value))
        db.session.commit()
        return product
    return _make_product

@pytest.fixture
def make_order(db):
    """Creates and commits a local order in 'created' state."""
    def _make_order(user, product, provider_order_id='order_TEST123'):
        order = Order(
            provider_order_id=provider_order_id,
            user_id=user.id,
            product_id=product.id,
            amount=product.price,
            currency=product.currency,
            status=OrderStatusEnum.CREATED,
            order_metadata={'raw': {'id': provider_order_id}},
        )
        db.session.add(order)
        db.session.commit()
        return order
    return _make_order

@pytest.fixture
def login(client):
    """Logs a user in on the test client by writing Flask-Login's session key directly."""
    def _login(user):
        with client.session_transaction() as session:
            session['_user_id'] = str(user.id)
            session['_fresh'] = True
        return client
    return _login


# --- Provider payload helpers ---

def sign_webhook(body, secret=TestConfig.RAZORPAY_WEBHOOK_SECRET):
    """Returns the X-Razorpay-Signature header value for a raw body."""
    return compute_signature(body, secret.encode('utf-8'))

def payment_event(event, order_id, payment_id, status='captured'):
    """Serialized webhook body for a payment.* event."""
    return json.dumps({
        'entity': 'event',
        'event': event,
        'payload': {
            'payment': {'entity': {'id': payment_id, 'order_id': order_id, 'status': status, 'amount': 19900}},
        },
    }).encode('utf-8')
