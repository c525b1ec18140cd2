from src.mailflow.core.notifications.email import (
    EmailTransport,
    LogOnlyTransport,
    ResendTransport,
    get_email_transport,
)

__all__ = [
    "EmailTransport",
    "LogOnlyTransport",
    "ResendTransport",
    "get_email_transport",
]
