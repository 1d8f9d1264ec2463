import secrets
from datetime import datetime

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from services.screening.db import get_db
from services.screening.models import AuthToken, User


# bcrypt only looks at the first 72 bytes; RegisterRequest caps passwords there.
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(*, user_id: str, db: Session) -> str:
    """Issue an opaque session token. It stays valid until the user signs out."""
    token = secrets.token_urlsafe(32)
    db.add(AuthToken(token=token, user_id=user_id))
    return token


def revoke_tokens(*, user_id: str, db: Session, token: str | None = None) -> int:
    """Sign out one session, or every open session of the user when ``token`` is None."""
    query = db.query(AuthToken).filter(AuthToken.user_id == user_id, AuthToken.revoked_at.is_(None))
    if token is not None:
        query = query.filter(AuthToken.token == token)

    now = datetime.utcnow()
    revoked = 0
    for auth in query.all():
        auth.revoked_at = now
        revoked += 1
    return revoked


def get_current_session(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> AuthToken:
    if creds is None:
        raise HTTPException(status_code=401, detail="Not authenticated")

    auth = db.get(AuthToken, creds.credentials)
    if not auth or auth.revoked_at is not None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return auth


def get_current_user(auth: AuthToken = Depends(get_current_session), db: Session = Depends(get_db)) -> User:
    user = db.get(User, auth.user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user
