import uuid
from typing import Optional

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import get_settings
from models import User
from schemas import AuthOut, LoginIn, SignupIn


class AuthError(Exception):
    def __init__(self, message: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="bearer-token")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def issue_token(user: User) -> str:
    return _serializer().dumps({"u": user.id, "role": user.role})


def read_token(token: str, max_age_secs: Optional[int] = None) -> str:
    max_age = max_age_secs or get_settings().token_max_age_secs
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired as exc:
        raise AuthError("Session expired") from exc
    except BadSignature as exc:
        raise AuthError("Invalid token") from exc
    user_id = data.get("u") if isinstance(data, dict) else None
    if not user_id:
        raise AuthError("Invalid token")
    return str(user_id)


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def signup(self, data: SignupIn) -> AuthOut:
        user = User(
            id=uuid.uuid4().hex,
            email=data.email,
            name=(data.name or "").strip() or None,
            password_hash=hash_password(data.password),
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise AuthError("Email already in use", status_code=409) from exc
        return AuthOut(token=issue_token(user), user=user.to_public())

    def login(self, data: LoginIn) -> AuthOut:
        user = self.session.scalar(select(User).where(User.email == data.email))
        if not user or not user.password_hash:
            raise AuthError("Invalid credentials")
        if not verify_password(data.password, user.password_hash):
            raise AuthError("Invalid credentials")
        return AuthOut(token=issue_token(user), user=user.to_public())

    def from_token(self, token: str) -> User:
        user = self.session.get(User, read_token(token))
        if not user:
            raise AuthError("Invalid token")
        return user
