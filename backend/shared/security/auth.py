"""
HTTP basic authentication for provider notifications.

The provider posts notifications with a static username/password pair
configured on both sides.
"""

import secrets

from fastapi import Depends
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from shared.config.logging import get_logger
from shared.config.settings import settings

logger = get_logger(__name__)

# auto_error=False: a refused notification must still get a provider-readable body
notification_basic_auth = HTTPBasic(auto_error=False)


def credentials_match(
    credentials: HTTPBasicCredentials | None,
    expected_user: str,
    expected_password: str,
) -> bool:
    """Constant-time credential check; unset expected credentials never match."""
    if credentials is None or not expected_user or not expected_password:
        return False

    user_ok = secrets.compare_digest(credentials.username.encode(), expected_user.encode())
    password_ok = secrets.compare_digest(credentials.password.encode(), expected_password.encode())
    return user_ok and password_ok


def notification_authenticated(
    credentials: HTTPBasicCredentials | None = Depends(notification_basic_auth),
) -> bool:
    """
    FastAPI dependency: True when the request carries the notification credentials.

    Usage:
        @router.post("/adyen/notify")
        async def notify(authenticated: bool = Depends(notification_authenticated)):
            if not authenticated:
                return PlainTextResponse(IngressReply.REFUSED)
    """
    authenticated = credentials_match(
        credentials,
        settings.adyen_notify_user,
        settings.adyen_notify_password,
    )
    if not authenticated:
        logger.warning(
            "Notification rejected - bad credentials",
            username=credentials.username if credentials else None,
        )
    return authenticated
