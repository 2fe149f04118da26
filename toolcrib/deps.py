from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session, select

from toolcrib.db import get_session
from toolcrib.errors import _auth_401, abort
from toolcrib.models import User
from toolcrib.security import decode_token
from toolcrib.services.issuance import IssuanceLifecycle
from toolcrib.store import SqlModelStore

# auto_error=False：没带 token 的错误格式由我们自己给
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def require_user(
    token: str | None = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> User:
    if not token:
        raise _auth_401("NOT_AUTHENTICATED", "Not logged in or session expired, please log in again")

    try:
        username = decode_token(token)
    except Exception:
        raise _auth_401("INVALID_TOKEN", "Token is invalid or expired, please log in again")

    user = session.exec(select(User).where(User.username == username)).first()
    if not user:
        raise _auth_401("USER_NOT_FOUND", "User does not exist or has been deleted")

    return user


def require_admin(user: User = Depends(require_user)) -> User:
    if user.role != "admin":
        abort(403, "FORBIDDEN", "Admin access required")
    return user


def get_store(session: Session = Depends(get_session)) -> SqlModelStore:
    return SqlModelStore(session)


def get_lifecycle(store: SqlModelStore = Depends(get_store)) -> IssuanceLifecycle:
    return IssuanceLifecycle(store)
