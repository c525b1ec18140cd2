from src.mailflow.services.rate_limit_service import (
    EMAIL_SEND_ENDPOINT,
    RateLimitService,
    compose,
)

__all__ = [
    "EMAIL_SEND_ENDPOINT",
    "RateLimitService",
    "compose",
]
