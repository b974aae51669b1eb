import logging
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...core.config import Settings
from ...core.dependencies import get_settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def require_cron_secret(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.cron_secret
    if (
        not expected
        or credentials is None
        or credentials.scheme.lower() != "bearer"
        # Header values arrive latin-1 decoded; str compare_digest rejects non-ASCII.
        or not secrets.compare_digest(
            credentials.credentials.encode("utf-8"), expected.encode("utf-8")
        )
    ):
        logger.error("Unauthorized cron job access attempt")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
