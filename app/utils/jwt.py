import datetime as dt
from typing import Dict
import jwt
from flask import current_app

ALGORITHM = "HS256"


class TokenError(Exception):
    pass


def create_access_token(user_id: int, role: str) -> str:
    """Issue a short-lived access token; ``sub`` carries the user id as a string."""
    now = dt.datetime.now(dt.timezone.utc)
    lifetime = dt.timedelta(minutes=current_app.config["ACCESS_TOKEN_LIFETIME_MIN"])
    payload: Dict = {
        "sub": str(user_id),
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=ALGORITHM)


def decode_token(token: str, expected_type: str = "access") -> Dict:
    try:
        data = jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenError("token expired")
    except jwt.InvalidTokenError:
        raise TokenError("invalid token")

    if data.get("type") != expected_type:
        raise TokenError(f"expected {expected_type} token")
    return data
