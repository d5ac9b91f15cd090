"""FastAPI dependencies: authentication and access to app state."""
import secrets

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..scheduler.service import ScheduleEngine
from ..services.dispatcher import Dispatcher

bearer_scheme = HTTPBearer(auto_error=False)


async def require_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> None:
    """Check the bearer token when the app was configured with one."""
    expected = request.app.state.api_token
    if not expected:
        return
    if credentials is None or not secrets.compare_digest(credentials.credentials, expected):
        raise HTTPException(
            status_code=401,
            detail="API token is invalid or missing. Send 'Authorization: Bearer <token>'.",
        )


def get_engine(request: Request) -> ScheduleEngine:
    return request.app.state.engine


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher
