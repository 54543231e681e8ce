# Overview: Request decorators for machine-to-machine API routes.

import hmac
from functools import wraps

from flask import current_app, jsonify, request


def require_bearer_secret(config_key: str):
    """
    Require `Authorization: Bearer <secret>` matching app.config[config_key].

    Used by cron and payment-provider callbacks. Returns 401 if the header is
    missing or wrong, and also when the secret is not configured at all.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            expected = current_app.config.get(config_key)
            auth_header = request.headers.get("Authorization", "")

            if not expected:
                current_app.logger.warning("%s is not configured; rejecting %s", config_key, request.path)
                return jsonify({"error": "Unauthorized"}), 401

            if not auth_header.startswith("Bearer "):
                return jsonify({"error": "Unauthorized"}), 401

            token = auth_header.split(" ", 1)[1]
            if not hmac.compare_digest(token.encode(), expected.encode()):
                return jsonify({"error": "Unauthorized"}), 401

            return f(*args, **kwargs)
        return decorated_function
    return decorator
