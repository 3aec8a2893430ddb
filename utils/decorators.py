from functools import wraps
from flask import jsonify, current_app
from flask_login import current_user


def admin_required(f):
    """
    Decorator restricting a JSON endpoint to users with the 'admin' role.

    Meant to sit below @login_required, which answers anonymous requests first.
    Authenticated non-admins get a 403.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({"error": "Unauthorized"}), 401
        if not current_user.is_admin:
            current_app.logger.warning(f"User {current_user.id} tried to access admin endpoint {f.__name__}.")
            return jsonify({"error": "Forbidden"}), 403
        return f(*args, **kwargs)
    return decorated_function
