import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader

worker_secret_scheme = APIKeyHeader(name="x-worker-secret", auto_error=False)


def verify_worker_secret(provided: Optional[str], settings) -> bool:
    if settings.auth_disabled:
        return True
    expected = settings.worker_secret
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def require_worker(request: Request, secret: Optional[str] = Depends(worker_secret_scheme)):
    """Rejects the request before any job state is touched."""
    settings = request.app.state.settings
    if not verify_worker_secret(secret, settings):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid worker credential")
    return True
