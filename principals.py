"""
Account lifecycle shared by end users and vendors.

Both principal collections go through the same flows: register with an e-mailed
OTP, verify, log in, update profile or password, delete. A PrincipalKind
describes what differs between them; PrincipalService runs the flows.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple, Type

from bson import ObjectId
from pydantic import BaseModel

import database
from database import Store
from errors import (
    AlreadyVerified,
    BusinessRuleViolation,
    DuplicateEmail,
    InvalidOTP,
    NotFound,
    OTPExpired,
    AuthenticationFailed,
    PrincipalNotFound,
    PrincipalUnverified,
)
from notifications import Notifier
from schemas import Account, Role, User, Vendor
from security import Hasher, TokenAuthority, generate_otp, otp_expired

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "phone_number", "address")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True)
class PrincipalKind:
    key: str
    label: str
    collection: str
    model: Type[Account]
    password_required_for_update: bool = False
    role_selectable: bool = False


USER_KIND = PrincipalKind(
    key="user",
    label="User",
    collection=database.USERS,
    model=User,
    role_selectable=True,
)

VENDOR_KIND = PrincipalKind(
    key="vendor",
    label="Vendor",
    collection=database.VENDORS,
    model=Vendor,
    password_required_for_update=True,
)


class Principal(BaseModel):
    """Minimal identity handed to route handlers once a token is accepted."""
    id: str
    email: str
    name: str
    role: Role
    kind: str

    @property
    def oid(self) -> ObjectId:
        return ObjectId(self.id)


def to_principal(doc: dict, kind: PrincipalKind) -> Principal:
    return Principal(id=str(doc["_id"]), email=doc["email"], name=doc["name"], role=doc["role"], kind=kind.key)


def public_profile(doc: dict) -> Dict[str, Any]:
    return {
        "id": str(doc["_id"]),
        "name": doc["name"],
        "email": doc["email"],
        "phone_number": doc.get("phone_number"),
        "address": doc.get("address"),
        "role": doc.get("role"),
        "is_verified": doc.get("is_verified", False),
    }


def run_now(func: Callable, *args, **kwargs) -> None:
    func(*args, **kwargs)


class PrincipalService:
    def __init__(self, kind: PrincipalKind, store: Store, hasher: Hasher, tokens: TokenAuthority,
                 notifier: Notifier, otp_ttl_minutes: int = 10,
                 clock: Callable[[], datetime] = utcnow, defer: Callable = run_now):
        self.kind = kind
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self.notifier = notifier
        self.otp_ttl = timedelta(minutes=otp_ttl_minutes)
        self.clock = clock
        self.defer = defer

    # lookups

    def find_by_email(self, email: str) -> Optional[dict]:
        return self.store.find_one(self.kind.collection, {"email": normalize_email(email)})

    def find_by_id(self, _id: Any) -> Optional[dict]:
        return self.store.get_document_by_id(self.kind.collection, _id)

    def _require(self, email: str) -> dict:
        doc = self.find_by_email(email)
        if not doc:
            raise BusinessRuleViolation(f"{self.kind.label} not found", error="not_found")
        return doc

    def _require_verified(self, doc: dict) -> None:
        if not doc.get("is_verified"):
            raise BusinessRuleViolation("Email not verified.", error="unverified")

    def _check_password(self, password: str, doc: dict, message: str = "Incorrect password") -> None:
        if not self.hasher.verify(password, doc.get("password_hash")):
            raise BusinessRuleViolation(message, error="invalid_credentials")

    def _issue_otp(self) -> Tuple[str, Dict[str, Any]]:
        code = generate_otp()
        return code, {"otp_hash": self.hasher.hash(code), "otp_expiry": self.clock() + self.otp_ttl}

    # registration and verification

    def register(self, name: str, email: str, password: str, phone_number: str, address: str,
                 role: Optional[Role] = None) -> dict:
        code, otp_fields = self._issue_otp()
        fields = dict(
            name=name.strip(),
            email=normalize_email(email),
            password_hash=self.hasher.hash(password),
            phone_number=phone_number.strip(),
            address=address.strip(),
            **otp_fields,
        )
        if self.kind.role_selectable and role is not None:
            fields["role"] = role
        record = self.kind.model(**fields)
        try:
            doc = self.store.create_principal(self.kind.collection, record)
        except DuplicateEmail:
            raise DuplicateEmail(f"{self.kind.label} already exists")
        logger.info("%s registered: %s", self.kind.label, doc["email"])
        self.defer(self.notifier.otp_issued, doc["email"], code, self.kind.label,
                   ttl_minutes=int(self.otp_ttl.total_seconds() // 60))
        return doc

    def verify_otp(self, email: str, otp: str) -> dict:
        doc = self._require(email)
        if doc.get("is_verified"):
            raise AlreadyVerified(f"{self.kind.label} already verified")
        if not self.hasher.verify(otp, doc.get("otp_hash")):
            raise InvalidOTP("Invalid or expired OTP")
        if otp_expired(doc.get("otp_expiry"), self.clock()):
            raise OTPExpired("Invalid or expired OTP")
        # only an unverified document with the same OTP hash can flip, so a racing verify loses
        updated = self.store.update_document(
            self.kind.collection,
            {"_id": doc["_id"], "is_verified": False, "otp_hash": doc["otp_hash"]},
            {"is_verified": True},
            unset=["otp_hash", "otp_expiry"],
        )
        if updated is None:
            raise AlreadyVerified(f"{self.kind.label} already verified")
        logger.info("%s verified: %s", self.kind.label, updated["email"])
        return updated

    def resend_otp(self, email: str) -> None:
        doc = self._require(email)
        if doc.get("is_verified"):
            raise AlreadyVerified(f"{self.kind.label} already verified")
        code, otp_fields = self._issue_otp()
        self.store.update_document(self.kind.collection, {"_id": doc["_id"]}, otp_fields)
        self.defer(self.notifier.otp_issued, doc["email"], code, self.kind.label, resend=True,
                   ttl_minutes=int(self.otp_ttl.total_seconds() // 60))

    # sessions

    def login(self, email: str, password: str) -> Dict[str, Any]:
        doc = self._require(email)
        self._check_password(password, doc)
        if not doc.get("is_verified"):
            raise BusinessRuleViolation("Email not verified. Please verify OTP.", error="unverified")
        token = self.tokens.issue({
            "sub": str(doc["_id"]),
            "email": doc["email"],
            "name": doc["name"],
            "role": doc["role"],
            "kind": self.kind.key,
        }, now=self.clock())
        logger.info("%s logged in: %s", self.kind.label, doc["email"])
        return {"token": token, "role": doc["role"]}

    def resolve(self, _id: Any, require_verified: bool = False) -> Principal:
        """Re-read the principal behind a token; stale claims are never trusted."""
        doc = self.find_by_id(_id)
        if not doc:
            raise PrincipalNotFound(f"Unauthorized: {self.kind.label} not found")
        if require_verified and not doc.get("is_verified"):
            raise PrincipalUnverified(f"Unauthorized: {self.kind.label} not found or unverified")
        return to_principal(doc, self.kind)

    # account maintenance

    def _own_account(self, principal: Principal, email: str) -> dict:
        if normalize_email(email) != principal.email:
            raise AuthenticationFailed("Unauthorized: Invalid token or email", error="email_mismatch")
        doc = self.find_by_id(principal.id)
        if not doc:
            raise NotFound(f"{self.kind.label} not found")
        return doc

    def update_profile(self, principal: Principal, email: str, changes: Dict[str, Optional[str]],
                       password: Optional[str] = None) -> dict:
        doc = self._own_account(principal, email)
        if self.kind.password_required_for_update:
            self._check_password(password, doc)
        self._require_verified(doc)

        updated_fields = {
            key: value.strip() for key, value in changes.items()
            if key in PROFILE_FIELDS and value and value.strip() != doc.get(key)
        }
        if not updated_fields:
            raise BusinessRuleViolation("No changes provided", error="no_changes")

        updated = self.store.update_document(self.kind.collection, {"_id": doc["_id"]}, updated_fields)
        self.defer(self.notifier.profile_updated, doc["email"], updated["name"], updated_fields, self.kind.label)
        return updated

    def update_password(self, principal: Principal, email: str, current_password: str, new_password: str) -> None:
        doc = self._own_account(principal, email)
        self._check_password(current_password, doc, "Incorrect current password")
        self._require_verified(doc)
        self.store.update_document(self.kind.collection, {"_id": doc["_id"]},
                                   {"password_hash": self.hasher.hash(new_password)})
        logger.info("%s password changed: %s", self.kind.label, doc["email"])
        self.defer(self.notifier.password_changed, doc["email"], doc["name"], self.kind.label)

    def delete_account(self, principal: Principal, email: str, password: str,
                       cascade: Optional[Callable[[ObjectId, Any], None]] = None) -> None:
        doc = self._own_account(principal, email)
        self._check_password(password, doc)
        self._require_verified(doc)

        with self.store.transaction() as session:
            if cascade is not None:
                cascade(doc["_id"], session)
            self.store.delete_document(self.kind.collection, {"_id": doc["_id"]}, session=session)
        logger.info("%s deleted: %s", self.kind.label, doc["email"])
        self.defer(self.notifier.account_deleted, doc["email"], doc["name"], self.kind.label)

    def stats(self) -> Dict[str, Any]:
        return {
            "total_users": self.store.count_documents(self.kind.collection),
            "users_by_role": self.store.count_by(self.kind.collection, "role"),
        }
