from flask import Blueprint, request, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user
from sqlalchemy.exc import IntegrityError
from authlib.jose import jwt # JOSE implementation used to verify the identity provider's tokens.
from authlib.jose.errors import JoseError

from extensions import db
from models.user import User

# Blueprint for authentication-related API routes.
# Sign-up, passwords and social logins live with the external identity provider;
# this app only turns a verified provider token into a local user and a session.
auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _bearer_token():
    """Extracts the token from an 'Authorization: Bearer <token>' header, or None."""
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def decode_identity_token(token):
    """
    Verifies an identity-provider JWT (HS256, shared secret) and returns its claims.

    Checks the signature, expiry and audience. The caller gets a JWTClaims dict with
    at least 'sub' and, for e-mail accounts, 'email'.

    Raises:
        JoseError: If the token is malformed, badly signed, expired or for another audience.
        RuntimeError: If IDENTITY_JWT_SECRET is not configured.
    """
    secret = current_app.config.get('IDENTITY_JWT_SECRET')
    if not secret:
        current_app.logger.critical("IDENTITY_JWT_SECRET is not configured; cannot verify identity tokens.")
        raise RuntimeError("IDENTITY_JWT_SECRET is not configured.")

    claims_options = {
        'sub': {'essential': True},
        'exp': {'essential': True},
    }
    audience = current_app.config.get('IDENTITY_JWT_AUDIENCE')
    if audience:
        claims_options['aud'] = {'essential': True, 'value': audience}

    claims = jwt.decode(token, secret.encode('utf-8'), claims_options=claims_options)
    claims.validate() # Raises on expiry / audience / missing essential claims.
    return claims


@auth_bp.route('/sync-user', methods=['POST'])
def sync_user():
    """
    Creates or refreshes the local user for the identity-provider session and logs it in.

    Expects 'Authorization: Bearer <access token>'. The user is matched by the token's
    subject first, then by e-mail (linking a row created before the subject was known).
    """
    token = _bearer_token()
    if not token:
        return jsonify({"error": "Unauthorized"}), 401

    try:
        claims = decode_identity_token(token)
    except JoseError as e:
        current_app.logger.warning(f"Rejected identity token: {e}")
        return jsonify({"error": "Unauthorized"}), 401
    except RuntimeError:
        return jsonify({"error": "Server config error"}), 500

    external_id = str(claims['sub'])
    email = (claims.get('email') or '').strip().lower()
    if not email:
        return jsonify({"error": "Invalid user session"}), 401
    metadata = claims.get('user_metadata') or {}
    name = metadata.get('name') or metadata.get('full_name') or email.split('@')[0]

    user = User.query.filter_by(external_id=external_id).first()
    if user is None:
        user = User.query.filter_by(email=email).first()

    try:
        if user is None:
            user = User(external_id=external_id, email=email, name=name)
            db.session.add(user)
            current_app.logger.info(f"New user synced from identity provider: {email}")
        else:
            user.external_id = external_id
            user.email = email
            if not user.name:
                user.name = name
        db.session.commit()
    except IntegrityError: # E-mail already bound to a different subject.
        db.session.rollback()
        current_app.logger.warning(f"User sync conflict for {email} (subject {external_id}).", exc_info=True)
        return jsonify({"error": "Account conflict. Please contact support."}), 409
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error syncing user {email}: {e}", exc_info=True)
        return jsonify({"error": "Internal Server Error"}), 500

    login_user(user, remember=True)
    return jsonify({"user": user.to_dict()})


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({"user": current_user.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """Ends the local session. The identity provider's session is the client's business."""
    current_app.logger.info(f"User {current_user.id} logged out.")
    logout_user()
    return jsonify({"success": True})
