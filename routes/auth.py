from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, field_validator

from herbchain.config import Config
from herbchain.deps import get_store
from utils.jwt import create_token

router = APIRouter(prefix="/auth", tags=["Auth"])

# pbkdf2_sha256 has no password length limit
pwd_ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ORGANIZATION_ROLES = ("Collector", "Processor", "Tester", "Manufacturer")

# =========================
# REQUEST MODELS
# =========================

class RegisterRequest(BaseModel):
    role: str
    fullName: str
    email: EmailStr
    password: str
    organizationType: str | None = None
    licenseNumber: str | None = None

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, v):
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    role: str


def _public(org: dict) -> dict:
    return {k: v for k, v in org.items() if k not in ("passwordHash", "_id")}

# =========================
# REGISTER
# =========================

@router.post("/register", status_code=201)
async def register_organization(data: RegisterRequest, request: Request):
    if data.role == "Admin":
        raise HTTPException(status_code=403, detail="Admin cannot be registered")
    if data.role not in ORGANIZATION_ROLES:
        raise HTTPException(status_code=400, detail=f"Unknown role {data.role}")

    store = get_store(request)
    if await store.get_organization(data.email):
        raise HTTPException(status_code=400, detail="Email already exists")

    org_doc = {
        "fullName": data.fullName,
        "email": data.email,
        "role": data.role,
        "organizationType": data.organizationType,
        "passwordHash": pwd_ctx.hash(data.password),
        "createdAt": datetime.now(timezone.utc),
    }
    if data.licenseNumber:
        org_doc["licenseNumber"] = data.licenseNumber

    created = await store.create_organization(org_doc)
    return {"message": "Registered successfully", "user": _public(created)}


# =========================
# LOGIN
# =========================

@router.post("/login")
async def login(data: LoginRequest, request: Request):
    # -------- ADMIN LOGIN --------
    if data.role == "Admin":
        if data.email != Config.ADMIN_EMAIL or data.password != Config.ADMIN_PASSWORD:
            raise HTTPException(status_code=401, detail="Invalid admin credentials")

        claims = {"id": "ADMIN", "role": "Admin", "email": Config.ADMIN_EMAIL, "name": "Admin"}
        return {"user": claims, "access_token": create_token(claims)}

    # -------- ORGANIZATIONS --------
    org = await get_store(request).get_organization(data.email)

    if not org or org.get("role") != data.role or "passwordHash" not in org or not pwd_ctx.verify(data.password, org["passwordHash"]):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_token({
        "id": org["id"],
        "role": org["role"],
        "email": org["email"],
        "name": org.get("fullName", "Organization"),
    })

    return {"user": _public(org), "access_token": token}
