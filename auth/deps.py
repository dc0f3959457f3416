from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from pydantic import ValidationError

from auth.schemas import Actor
from auth.security import decode_access_token

bearer = HTTPBearer(auto_error=False)


def get_current_actor(
        request: Request,
        creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> Actor:
    if not creds:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        payload = decode_access_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    try:
        actor = Actor(id=str(payload["sub"]), role=payload.get("role") or "")
    except (KeyError, ValidationError):
        raise HTTPException(status_code=401, detail="Token is missing subject or role")

    # picked up by the transaction logger
    request.state.actor_id = actor.id
    return actor


def require_roles(*allowed):
    def _guard(actor: Actor = Depends(get_current_actor)):
        if actor.role not in set(allowed):
            raise HTTPException(status_code=403, detail="Forbidden")
        return actor

    return _guard
