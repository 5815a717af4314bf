"""Request-scoped dependencies for the API routers."""
from typing import Optional

from fastapi import Header

from ..config import get_settings


def get_current_user_email(x_user_email: Optional[str] = Header(None)) -> str:
    """Identity of the caller.

    Authentication happens upstream; the email forwarded in ``X-User-Email``
    is trusted as-is. Requests without it act as the system user.
    """
    return x_user_email or get_settings().system_user
