from flask import jsonify


def ok(data=None, message="success", status=200):
    payload = {"status": "success", "message": message}
    if data is not None:
        payload["data"] = data
    return jsonify(payload), status


def error(message, status=400, code=None, errors=None):
    payload = {
        "status": "error",
        "message": message,
        "code": code or status
    }
    if errors:
        payload["errors"] = errors
    return jsonify(payload), status


def error_response(message: str, status_code: int):
    return jsonify({"status": "error", "message": message}), status_code


def validation_error_response(errors):
    """422 envelope listing field-level messages from a pydantic ValidationError."""
    fields = {}
    for err in errors:
        loc = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
        fields.setdefault(loc, []).append(err.get("msg", "Invalid value"))
    return error("Validation error", status=422, errors=fields)


def internal_error_response():
    return error_response("An unexpected error occurred, please try again later", 500)
