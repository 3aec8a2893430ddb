import logging # To apply the configured log level to app.logger.
import click # For the seed-catalog CLI output.
from flask import Flask, jsonify # The main Flask class and JSON responses.
from config import Config # Import the application's configuration class.
from extensions import db, login_manager, migrate # Import initialized extensions.
from models.user import User # Import User model, primarily for the user_loader.
from services.errors import BillingError # Base class of all typed domain errors.


# Application Factory Function
def create_app(config_class=Config):
    """
    Application factory for creating and configuring the Flask app.
    This pattern is useful for creating multiple app instances (e.g., for testing
    with a TestConfig subclass) and avoids global app objects.

    Args:
        config_class (type): Configuration object to load. Defaults to Config.
    """
    app = Flask(__name__)

    # Load configuration from the config object (defined in config.py).
    app.config.from_object(config_class)

    # --- Logging ---
    # Services log through current_app.logger; the level comes from LOG_LEVEL.
    app.logger.setLevel(getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO))

    # --- Initialize Flask Extensions ---
    # Initialize SQLAlchemy with the app (for database ORM).
    db.init_app(app)
    # Initialize Flask-Migrate for database schema migrations.
    migrate.init_app(app, db)

    # Initialize Flask-Login for user session management.
    login_manager.init_app(app)

    # --- Flask-Login User Loader ---
    # Reloads the user object from the user ID stored in the session on each request.
    @login_manager.user_loader
    def load_user(user_id):
        """Loads a user from the database given their ID."""
        return db.session.get(User, int(user_id))

    # This is a JSON API: anonymous access to a @login_required route is a 401, not a redirect.
    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Unauthorized"}), 401

    # --- Error Handling ---
    # Typed domain errors carry their own HTTP status and machine-readable code.
    @app.errorhandler(BillingError)
    def handle_billing_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    # --- Import and Register Blueprints ---
    # Blueprints help organize routes into modular components; each sets its own URL prefix.
    from routes.auth import auth_bp
    from routes.billing import billing_bp
    from routes.entitlements import entitlements_bp
    from routes.plans import plans_bp
    from routes.ai import ai_bp
    from routes.admin import admin_bp

    app.register_blueprint(auth_bp)         # /api/auth/...
    app.register_blueprint(billing_bp)      # /api/billing/...
    app.register_blueprint(entitlements_bp) # /api/entitlements
    app.register_blueprint(plans_bp)        # /api/plans/...
    app.register_blueprint(ai_bp)           # /api/ai/...
    app.register_blueprint(admin_bp)        # /admin/api/...

    # --- CLI Commands ---
    @app.cli.command('seed-catalog')
    def seed_catalog_command():
        """Creates the default features and products (safe to re-run)."""
        from services.catalog import seed_default_catalog
        created = seed_default_catalog()
        if created:
            click.echo(f"Created products: {', '.join(created)}")
        else:
            click.echo("Catalog already seeded.")

    @app.route('/health')
    def health():
        return jsonify({"status": "ok"})

    return app # Return the configured Flask app instance.


# This block allows running the Flask development server directly using `python app.py`.
if __name__ == '__main__':
    app = create_app() # Create an app instance using the factory.
    app.run(debug=True)
