from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from herbchain.config import Config

# =========================
# CONFIG
# =========================

SECRET_KEY = Config.JWT_SECRET
ALGORITHM = Config.JWT_ALGORITHM
EXPIRE_MINUTES = Config.JWT_EXPIRE_MINUTES

ROLES = ("Admin", "Collector", "Processor", "Tester", "Manufacturer")

security = HTTPBearer()

# =========================
# TOKEN CREATE
# =========================

def create_token(data: dict):
    payload = data.copy()
    payload["exp"] = datetime.now(timezone.utc) + timedelta(minutes=EXPIRE_MINUTES)
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)

# =========================
# TOKEN DECODE (LOW LEVEL)
# =========================

def decode_token(token: str):
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])

# =========================
# FASTAPI DEPENDENCIES
# =========================

def verify_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
):
    token = credentials.credentials

    try:
        payload = decode_token(token)
        return payload   # {id, role, email, name, exp}
    except JWTError:
        raise HTTPException(
            status_code=401,
            detail="Invalid or expired token"
        )


def require_role(*roles: str):
    """Dependency factory: the caller's token must carry one of `roles`."""

    def checker(user=Depends(verify_token)):
        if user.get("role") not in roles:
            raise HTTPException(status_code=403, detail=f"{' / '.join(roles)} only")
        return user

    return checker
