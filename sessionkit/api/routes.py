from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response

from sessionkit.api.schemas import Envelope, LoginRequest, LoginResponse, SessionUser
from sessionkit.logging import get_logger
from sessionkit.service.runtime import get_runtime

logger = get_logger(__name__)

router = APIRouter(prefix="/v1")


@router.post("/auth/login", response_model=Envelope, tags=["auth"])
async def login(body: LoginRequest, response: Response):
    """Authenticate a scoped identifier and start a session.

    Sets the access, encrypted refresh and fingerprint cookies. Unknown
    identifiers and wrong passwords both answer 401 with the same body.
    """
    runtime = get_runtime()
    result = await runtime.auth.authenticate_user(
        body.scope, body.identifier, body.password
    )
    for cookie in result.cookies:
        response.headers.append("set-cookie", cookie)
    return Envelope(
        status="ok",
        data=LoginResponse(
            user=SessionUser(
                user_id=result.user.user_id,
                attributes=dict(result.user.attributes),
            ),
            access_token_expires_at=datetime.fromtimestamp(
                result.access_token.expires_at, tz=timezone.utc
            ),
        ),
    )


@router.get("/auth/session", response_model=Envelope, tags=["auth"])
async def current_session(request: Request):
    """Return the user of the access token cookie, checked against its fingerprint."""
    runtime = get_runtime()
    settings = runtime.settings
    user = runtime.auth.validate_access_token(
        request.cookies.get(settings.access_token_cookie_name),
        request.cookies.get(settings.fingerprint_token_cookie_name),
    )
    return Envelope(
        status="ok",
        data=SessionUser(user_id=user.user_id, attributes=dict(user.attributes)),
    )
