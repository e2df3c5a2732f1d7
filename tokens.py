from typing import Optional

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import Settings, get_settings
from errors import Unauthenticated


def _serializer(settings: Settings) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.secret_key, salt="access-token")


def generate_access_token(user_id: int, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return _serializer(settings).dumps({"u": user_id})


def verify_access_token(token: str, settings: Optional[Settings] = None) -> int:
    settings = settings or get_settings()
    try:
        data = _serializer(settings).loads(
            token, max_age=settings.token_max_age_secs
        )
    except SignatureExpired as exc:
        raise Unauthenticated("Token expired") from exc
    except BadSignature as exc:
        raise Unauthenticated("Not authorized, token failed") from exc

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int):
        raise Unauthenticated("Not authorized, token failed")
    return user_id


def hash_password(password: str) -> str:
    # bcrypt only looks at the first 72 bytes
    pw_bytes = password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(
            password.encode("utf-8")[:72], password_hash.encode("utf-8")
        )
    except ValueError:
        return False
