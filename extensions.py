from flask_sqlalchemy import SQLAlchemy # ORM for database interactions.
from flask_login import LoginManager    # Keeps the synced identity in the session between requests.
from flask_migrate import Migrate       # Alembic-backed schema migrations.

# Initialize SQLAlchemy.
# Bound to the Flask app in the application factory (create_app in app.py) via db.init_app(app).
# Every service in services/ reads and writes through db.session, so one request
# shares one session and one transactional scope.
db = SQLAlchemy()

# Initialize Flask-Login's LoginManager.
# Authentication itself is done by the external identity provider; once its token
# has been verified (routes/auth.py), the local user id is remembered in the session.
login_manager = LoginManager()

# Initialize Flask-Migrate. Wired to the app and db in create_app.
migrate = Migrate()
