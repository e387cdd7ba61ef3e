from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field, field_validator

from auth import current_user, get_user_service, require_roles
from principals import Principal, PrincipalService, public_profile
from schemas import PHONE_PATTERN, Role

router = APIRouter(prefix="/api/auth", tags=["auth"])


# ============ Request bodies ==========
class EmailBody(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class RegisterRequest(EmailBody):
    name: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    address: str = Field(..., min_length=1)
    role: Optional[Role] = None


class VerifyOTPRequest(EmailBody):
    otp: str = Field(..., min_length=1)


class LoginRequest(EmailBody):
    password: str = Field(..., min_length=1)


class UpdateUserRequest(EmailBody):
    name: Optional[str] = None
    phone_number: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[str] = None


class UpdatePasswordRequest(EmailBody):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class DeleteAccountRequest(EmailBody):
    password: str = Field(..., min_length=1)


# ===================== Public =====================
@router.post("/register", status_code=201)
def register(payload: RegisterRequest, service: PrincipalService = Depends(get_user_service)):
    doc = service.register(payload.name, payload.email, payload.password, payload.phone_number,
                           payload.address, role=payload.role)
    return {"message": "User registered. Please verify OTP sent to your email.", "user": public_profile(doc)}


@router.post("/verify-otp")
def verify_otp(payload: VerifyOTPRequest, service: PrincipalService = Depends(get_user_service)):
    doc = service.verify_otp(payload.email, payload.otp)
    return {"message": "Email verified successfully. You can now log in.", "user": public_profile(doc)}


@router.post("/resend-otp")
def resend_otp(payload: EmailBody, service: PrincipalService = Depends(get_user_service)):
    service.resend_otp(payload.email)
    return {"message": "OTP resent successfully."}


@router.post("/login")
def login(payload: LoginRequest, service: PrincipalService = Depends(get_user_service)):
    session = service.login(payload.email, payload.password)
    return {"message": "Login successful", **session}


# ===================== Authenticated =====================
@router.post("/logout")
def logout(user: Principal = Depends(current_user)):
    # tokens are stateless; the client discards its copy
    return {"message": "Logged out successfully. Please clear your token."}


@router.put("/update-user")
def update_user(payload: UpdateUserRequest, user: Principal = Depends(current_user),
                service: PrincipalService = Depends(get_user_service)):
    doc = service.update_profile(user, payload.email, payload.model_dump(exclude={"email"}))
    return {"message": "Account updated successfully.", "user": public_profile(doc)}


@router.put("/update-password")
def update_password(payload: UpdatePasswordRequest, user: Principal = Depends(current_user),
                    service: PrincipalService = Depends(get_user_service)):
    service.update_password(user, payload.email, payload.current_password, payload.new_password)
    return {"message": "Password updated successfully."}


@router.delete("/delete-account")
def delete_account(payload: DeleteAccountRequest, user: Principal = Depends(current_user),
                   service: PrincipalService = Depends(get_user_service)):
    service.delete_account(user, payload.email, payload.password)
    return {"message": "Account deleted successfully. Please clear your token."}


@router.get("/dashboard")
def dashboard(user: Principal = Depends(current_user)):
    return {"message": f"Welcome to the dashboard, {user.name}", "user": user.model_dump(mode="json")}


@router.get("/admin-stats")
def admin_stats(admin: Principal = Depends(require_roles(Role.ADMIN)),
                service: PrincipalService = Depends(get_user_service)):
    return {"message": "Admin statistics", "stats": service.stats()}
