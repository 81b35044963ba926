from functools import wraps
from flask import request
from pydantic import ValidationError
from .responses import error, validation_error_response


def validate_schema(schema):
    """Decorator to validate request JSON against a Pydantic schema."""

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            data = request.get_json(silent=True)
            if data is None:
                data = {}
            if not isinstance(data, dict):
                return error("Request body must be a JSON object", status=422)
            try:
                obj = schema.model_validate(data)
            except ValidationError as ve:
                return validation_error_response(ve.errors())
            request.validated_data = obj
            return fn(*args, **kwargs)
        return wrapper

    return decorator
