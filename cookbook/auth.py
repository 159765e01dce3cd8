"""Admin bearer-token check shared by the /api/admin routes.

Issuing and verifying user credentials belongs to the auth service; this
module only compares the presented token with the configured admin token.
"""

import logging
import secrets

from fastapi import Header, HTTPException, Request

logger = logging.getLogger(__name__)


def require_admin(request: Request, authorization: str = Header(None)) -> str:
    """Validate `Authorization: Bearer <token>` against the admin token."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")

    token = authorization[7:]
    expected = request.app.state.settings.admin_token
    if not expected or not secrets.compare_digest(token, expected):
        logger.warning("Rejected admin token from %s", request.client)
        raise HTTPException(status_code=401, detail="Invalid token")
    return token
