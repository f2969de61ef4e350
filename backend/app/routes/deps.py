"""
FastAPI dependencies: current user from the bearer token, role guards and
the per-request access resolver.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User, ROLE_ADMIN, ROLE_COACH, ROLE_MENTOR
from app.security import decode_access_token
from app.services.authorization import AccessResolver, Actor
from app.services.relationship_store import RelationshipStore


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    user_id = decode_access_token(authorization.split(" ", 1)[1].strip())
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    if not user.approved:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account awaiting approval")
    if not user.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")
    return user


def get_actor(user: User = Depends(get_current_user)) -> Actor:
    return Actor.from_user(user)


def get_resolver(db: Session = Depends(get_db)) -> AccessResolver:
    return AccessResolver(RelationshipStore(db))


def require_role(*roles: str):
    """Return a dependency that enforces one of the given roles."""
    def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{user.role}' is not permitted. Required: {roles}",
            )
        return user
    return _check


def forbid(detail: str = "forbidden"):
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


require_admin = require_role(ROLE_ADMIN)
require_staff = require_role(ROLE_ADMIN, ROLE_COACH, ROLE_MENTOR)
