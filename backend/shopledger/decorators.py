# Overview: Request decorators for API routes.

from functools import wraps
from flask import current_app, jsonify

from .validation import ConflictError, NotFoundError, ValidationError


def json_errors(action: str):
    """
    Translate domain errors raised by a route into JSON responses.

    - ValidationError -> 400
    - NotFoundError -> 404
    - ConflictError -> 409
    - anything else is logged with its traceback and returned as a generic 500

    Args:
        action: short description used in the log line ("create purchase")
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                return jsonify({"error": str(e)}), 400
            except NotFoundError as e:
                return jsonify({"error": str(e)}), 404
            except ConflictError as e:
                return jsonify({"error": str(e)}), 409
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator
