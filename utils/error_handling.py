from functools import wraps
from flask import flash, redirect, url_for, jsonify
from utils.logger import log_exception


class ValidationError(Exception):
    """Field-level validation failure raised by the services."""

    def __init__(self, errors: dict):
        self.errors = errors
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))


class APIError(Exception):
    """An error that maps directly onto a JSON response."""

    def __init__(self, status: int, payload: dict):
        self.status = status
        self.payload = payload
        super().__init__(payload.get("error", "API error"))


def handle_errors(redirect_endpoint: str, default_message: str = "An error occurred.", category: str = "danger"):
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as err:
                # Log error and flash a friendly message
                try:
                    log_exception(err, context=f"{func.__name__}:")
                except Exception:
                    pass
                try:
                    flash(f"{default_message} {err}", category)
                except Exception:
                    pass
                try:
                    return redirect(url_for(redirect_endpoint))
                except Exception:
                    # As a last resort, just redirect to root
                    return redirect("/")
        return wrapper
    return decorator


def api_errors(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except APIError as err:
            return jsonify(err.payload), err.status
        except ValidationError as err:
            return jsonify({"error": "Validation failed", "errors": err.errors}), 400
        except Exception as err:
            log_exception(err, context=f"{func.__name__}:")
            return jsonify({"error": "Internal server error", "message": str(err)}), 500
    return wrapper
