"""
Accounts and login sessions.

Every issued JWT carries a jti that names a server-side login session row;
a token is only honoured while that row is active and unexpired, so logout
and refresh can revoke tokens before their JWT expiry.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt
from sqlalchemy.orm import Session as DbSession

from quizforge.config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
    SECRET_KEY,
    SESSION_EXTEND_MINUTES,
)
from quizforge.models.db.user import Session, User

logger = logging.getLogger(__name__)

DEFAULT_INITIALS = "TU"
MAX_INITIALS_LENGTH = 4


def derive_initials(name: str) -> str:
    """First letters of the first two words of the name, upper-cased."""
    words = (name or "").split()
    initials = "".join(word[0] for word in words[:2]).upper()
    return initials or DEFAULT_INITIALS


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(
        plain_password.encode("utf-8"), hashed_password.encode("utf-8")
    )


# ---- users ----

def get_user_by_email(db: DbSession, email: str) -> User | None:
    """Emails are stored lower-cased."""
    return db.query(User).filter(User.email == email.lower()).first()


def get_user_by_id(db: DbSession, user_id: int) -> User | None:
    return db.get(User, user_id)


def create_user(db: DbSession, name: str, email: str, password: str) -> User:
    user = User(
        name=name.strip(),
        email=email.lower(),
        initials=derive_initials(name),
        hashed_password=hash_password(password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id}")
    return user


def authenticate_user(db: DbSession, email: str, password: str) -> User | None:
    """The user when email and password match, otherwise None."""
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.hashed_password):
        return None
    return user


def update_profile(
    db: DbSession, user: User, name: str | None = None, initials: str | None = None
) -> User:
    """
    Rename the user and/or set initials.
    A new name without explicit initials re-derives them.
    """
    if name is not None and name.strip():
        user.name = name.strip()
        if initials is None:
            user.initials = derive_initials(user.name)
    if initials is not None and initials.strip():
        user.initials = initials.strip().upper()[:MAX_INITIALS_LENGTH]
    db.commit()
    db.refresh(user)
    return user


# ---- tokens and login sessions ----

def issue_token(db: DbSession, user_id: int) -> tuple[str, int]:
    """
    Sign a bearer token and open the login session behind it.

    Returns:
        Tuple of (token, lifetime in seconds)
    """
    jti = uuid.uuid4().hex
    lifetime = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    expires_at = datetime.now(timezone.utc) + lifetime
    token = jwt.encode(
        {"sub": str(user_id), "exp": expires_at, "jti": jti},
        SECRET_KEY,
        algorithm=ALGORITHM,
    )
    db.add(Session(user_id=user_id, token_jti=jti, expires_at=expires_at))
    db.commit()
    return token, int(lifetime.total_seconds())


def decode_token(token: str) -> dict | None:
    """Claims of a correctly signed, unexpired token."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def find_login_session(db: DbSession, token_jti: str) -> Session | None:
    """Active, unexpired login session for the token id."""
    now = datetime.now(timezone.utc)
    return (
        db.query(Session)
        .filter(
            Session.token_jti == token_jti,
            Session.is_active == True,  # noqa: E712
            Session.expires_at > now,
        )
        .first()
    )


def touch_login_session(db: DbSession, session: Session) -> None:
    """Record activity and push the expiry forward."""
    now = datetime.now(timezone.utc)
    session.last_activity = now
    session.expires_at = now + timedelta(minutes=SESSION_EXTEND_MINUTES)
    db.commit()


def end_login_session(db: DbSession, token_jti: str) -> bool:
    """Deactivate the login session; False when there was none."""
    session = db.query(Session).filter(Session.token_jti == token_jti).first()
    if session is None or not session.is_active:
        return False
    session.is_active = False
    db.commit()
    return True


def purge_expired_login_sessions(db: DbSession) -> int:
    """Delete login sessions past their expiry; returns the number removed."""
    now = datetime.now(timezone.utc)
    removed = db.query(Session).filter(Session.expires_at < now).delete()
    db.commit()
    return removed
