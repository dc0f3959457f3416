# auth/security.py
import os, datetime as dt
from dotenv import load_dotenv
from jose import jwt

load_dotenv()

JWT_ALG = "HS256"
JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
ACCESS_MIN = int(os.getenv("ACCESS_MIN", "15"))


def create_access_token(sub: str, role: str, minutes: int | None = None):
    exp = dt.datetime.now(dt.timezone.utc) + dt.timedelta(minutes=minutes or ACCESS_MIN)
    return jwt.encode({"sub": sub, "role": role, "exp": exp}, JWT_SECRET, algorithm=JWT_ALG)


def decode_access_token(token: str):
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
