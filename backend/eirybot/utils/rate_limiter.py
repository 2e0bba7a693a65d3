# /eirybot/utils/rate_limiter.py

from slowapi import Limiter
from slowapi.util import get_remote_address
from eirybot.config.settings import settings

# Shared limiter instance. Both the app and the route modules import it from
# here so the routes can be decorated before the app exists.

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    enabled=settings.environment != "test",
)
