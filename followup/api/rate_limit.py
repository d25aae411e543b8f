import logging

from prometheus_client import Counter
from slowapi import Limiter
from slowapi.util import get_remote_address

from followup.core.config import settings

logger = logging.getLogger(__name__)

_PROM_RATE_LIMIT = Counter("followup_rate_limit_exceeded_events", "Rate limit exceeded events (handler invocations)")

# Test runs hammer the same client address; limits only apply outside tests.
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.ENV.lower() != "test",
)
logger.debug("Rate limiter storage: %s", settings.RATE_LIMIT_STORAGE_URI)

RATE_LIMITS = {
    "submit": settings.RATE_LIMIT_SUBMIT,
    "webhook_stripe": settings.RATE_LIMIT_WEBHOOK,
}


def increment_rate_limit_exceeded():
    _PROM_RATE_LIMIT.inc()
