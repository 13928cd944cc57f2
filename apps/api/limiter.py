"""
Rate limiting for the read API, keyed on client address.

Routes without their own @limiter.limit fall under the default limit via
SlowAPIMiddleware.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from packages.seismo.settings import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.api_default_rate_limit],
)
