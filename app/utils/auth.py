from functools import wraps
from flask import request, g
from models import db
from models.user import User
from .responses import error
from app.auth.permissions import role_has_scope
from .jwt import decode_token, TokenError


def _bearer_token():
    auth = request.headers.get("Authorization", "")
    if not auth:
        return None
    return auth.split(" ", 1)[1] if auth.startswith("Bearer ") else auth


def _load_user(token):
    """Return (user, error_response). Blocked or unknown accounts are refused here."""
    try:
        payload = decode_token(token, expected_type="access")
    except TokenError as e:
        return None, error(str(e), status=401)
    try:
        user = db.session.get(User, int(payload["sub"]))
    except (KeyError, TypeError, ValueError):
        return None, error("invalid token", status=401)
    if user is None:
        return None, error("Unknown user", status=401)
    if not user.is_active:
        return None, error("Account is blocked", status=403)
    g.user = user
    g.role = user.role
    request.user = user
    return user, None


def auth_required(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return error("Auth header missing", status=401)
        _, failure = _load_user(token)
        if failure:
            return failure
        return func(*args, **kwargs)

    return wrapper


def optional_auth(func):
    """Attach ``request.user`` when a bearer token is sent; anonymous otherwise."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        request.user = None
        token = _bearer_token()
        if token:
            _, failure = _load_user(token)
            if failure:
                return failure
        return func(*args, **kwargs)

    return wrapper


def _to_set(obj):
    return set(obj) if isinstance(obj, (list, tuple, set)) else {obj}


def role_required(required):
    """Authorize based on user role or scoped action."""
    required_set = _to_set(required)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            role = getattr(getattr(request, "user", None), "role", None) or getattr(g, "role", None)
            if not role:
                return error("Role missing", status=403)
            for entry in required_set:
                if ":" in entry:
                    r, action = entry.split(":", 1)
                    if role == r and role_has_scope(role, action):
                        break
                else:
                    if role == entry:
                        break
            else:
                return error("Forbidden", status=403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
