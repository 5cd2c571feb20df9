from passlib.context import CryptContext
from sqlalchemy.orm import Session

from subtrack.config import Settings, get_settings
from subtrack.errors import ForbiddenError, UnauthorizedError
from subtrack.infrastructure.db.models import User

pwd_context = CryptContext(schemes=["pbkdf2_sha256"])


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def authenticate(db: Session, email: str, password: str, settings: Settings | None = None) -> User:
    settings = settings or get_settings()
    allowed = settings.allowed_emails()
    if allowed and email.strip().lower() not in allowed:
        raise ForbiddenError("Email is not allowed to sign in")

    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")
    return user


def create_user(db: Session, email: str, password: str, name: str = "") -> User:
    user = User(
        email=email.strip().lower(),
        name=name or email,
        password_hash=hash_password(password),
    )
    db.add(user)
    db.commit()
    return user
