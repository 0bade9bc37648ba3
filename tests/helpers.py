from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt

from common.settings import ALGORITHM, SECRET_KEY


def make_token(user_id: int, role: str, sub: Optional[str] = None, minutes: int = 30) -> str:
    payload = {
        "sub": sub or f"user{user_id}@example.com",
        "role": role,
        "user_id": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def auth_headers(user_id: int, role: str = "user") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


class FakeResponse:
    def __init__(self, status_code, json_body=None):
        self.status_code = status_code
        self._json = json_body

    def json(self):
        return self._json
