import os

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Per-route limits; controllers decorate reads and writes with these
READ_LIMIT = os.getenv("RATE_LIMIT_READ", "100 per minute")
WRITE_LIMIT = os.getenv("RATE_LIMIT_WRITE", "30 per minute")
LOGIN_LIMIT = os.getenv("RATE_LIMIT_LOGIN", "10 per minute")

# Bound by create_app(); switched off there when RATE_LIMIT_ENABLED=0 under tests
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000 per hour"],
    storage_uri=os.getenv("LIMITER_STORAGE_URI", "memory://"),
)
