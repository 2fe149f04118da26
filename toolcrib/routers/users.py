from fastapi import APIRouter, Depends
from sqlmodel import Session, select
from sqlalchemy.exc import IntegrityError

from toolcrib.db import get_session
from toolcrib.deps import require_admin
from toolcrib.errors import abort
from toolcrib.logging_config import get_logger
from toolcrib.models import User
from toolcrib.schemas import UserCreate, UserRead
from toolcrib.security import hash_password

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/users", tags=["users"])


@router.get("", response_model=list[UserRead])
def list_attendants(
    session: Session = Depends(get_session),
    _admin: User = Depends(require_admin),
):
    stmt = select(User).where(User.role == "attendant").order_by(User.id.asc())
    return session.exec(stmt).all()


@router.post("", response_model=UserRead)
def create_attendant(
    data: UserCreate,
    session: Session = Depends(get_session),
    _admin: User = Depends(require_admin),
):
    existing = session.exec(select(User).where(User.username == data.username)).first()
    if existing:
        abort(409, "USERNAME_EXISTS", "Username already exists")

    # bcrypt 的 72 bytes 限制，统一按这个口径
    if len(data.password.encode("utf-8")) > 72:
        abort(400, "PASSWORD_TOO_LONG", "Password is too long (72 bytes max)")

    user = User(
        username=data.username,
        password_hash=hash_password(data.password),
        role="attendant",
        shift=data.shift.upper(),
        shift_time=data.shift_time.value,
    )
    session.add(user)

    # 并发下 unique 冲突兜底
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(409, "USERNAME_EXISTS", "Username already exists")

    session.refresh(user)
    logger.info("attendant {} created (shift {}, {})", user.username, user.shift, user.shift_time)
    return user


@router.delete("/{user_id}")
def delete_attendant(
    user_id: int,
    session: Session = Depends(get_session),
    _admin: User = Depends(require_admin),
):
    user = session.get(User, user_id)
    if not user or user.role != "attendant":
        abort(404, "NOT_FOUND", "Attendant not found")
    session.delete(user)
    session.commit()
    return {"ok": True}
