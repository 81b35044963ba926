from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import os

# Shared limiter; checkout endpoints add their own per-IP limit on top
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=os.getenv("RATELIMIT_STORAGE_URL", "memory://"),
    strategy="fixed-window",
    default_limits=[os.getenv("RATELIMIT_DEFAULT", "300 per hour")],
    headers_enabled=True,
)
