"""
Caller identity for the dashboard API.

AUTH_MODE=firebase verifies `Authorization: Bearer <ID token>` with Firebase
Admin; AUTH_MODE=header trusts `X-User-Id` (local development only).
"""
import logging

from fastapi import Header, HTTPException, Request, status

from utils.firebase_admin_adapter import FirebaseUnavailable, verify_id_token

logger = logging.getLogger("backend.auth")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def get_current_user(
    request: Request,
    authorization: str = Header(None),
    x_user_id: str = Header(None),
) -> str:
    """Return the caller's uid or raise 401"""
    settings = request.app.state.settings

    if settings.auth_mode == "header":
        uid = (x_user_id or "").strip()
        if not uid:
            raise _unauthorized("Missing X-User-Id header")
        return uid

    if not authorization or not authorization.startswith("Bearer "):
        raise _unauthorized("Missing or invalid authorization header")
    token = authorization.split("Bearer ", 1)[1].strip()
    if not token:
        raise _unauthorized("Missing or invalid authorization header")

    try:
        decoded = verify_id_token(token, settings)
    except FirebaseUnavailable as e:
        logger.error("Cannot verify ID token, Firebase unavailable: %s", e)
        raise _unauthorized("Invalid authentication token")
    except Exception as e:
        logger.warning("Token verification failed: %s", e)
        raise _unauthorized("Invalid authentication token")

    uid = decoded.get("uid") if isinstance(decoded, dict) else None
    if not uid:
        raise _unauthorized("Invalid authentication token")
    return uid
