from functools import partial
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from auth import current_vendor, get_store, get_vendor_resources, get_vendor_service
from database import serialize_doc
from ownership import VendorResources, purge_vendor_resources
from principals import Principal, PrincipalService, public_profile
from routes_auth import DeleteAccountRequest, EmailBody, LoginRequest, UpdatePasswordRequest, VerifyOTPRequest
from schemas import PHONE_PATTERN, ItemType

router = APIRouter(prefix="/api/vendor", tags=["vendor"])


# ============ Request bodies ==========
class VendorRegisterRequest(EmailBody):
    name: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    address: str = Field(..., min_length=1)


class VendorUpdateRequest(EmailBody):
    password: str = Field(..., min_length=1)
    name: Optional[str] = Field(None, min_length=3)
    phone_number: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[str] = Field(None, min_length=1)


class RestaurantCreate(BaseModel):
    name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    operating_hours: str = Field(..., min_length=1)


class RestaurantUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    address: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    operating_hours: Optional[str] = Field(None, min_length=1)


class ItemCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = Field(None, max_length=500)
    price: float = Field(..., ge=0)
    type: ItemType
    is_available: bool = True


class ItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, max_length=500)
    price: Optional[float] = Field(None, ge=0)
    type: Optional[ItemType] = None
    is_available: Optional[bool] = None


class PackageCreate(BaseModel):
    package_name: str = Field(..., min_length=1)
    description: Optional[str] = Field(None, max_length=500)
    price: float = Field(..., ge=0)
    items: List[str] = Field(..., min_length=1)
    image_url: Optional[str] = None
    is_active: bool = True


class PackageUpdate(BaseModel):
    package_name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, max_length=500)
    price: Optional[float] = Field(None, ge=0)
    items: Optional[List[str]] = Field(None, min_length=1)
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


def _changes(payload: BaseModel) -> dict:
    return payload.model_dump(mode="json", exclude_none=True)


# ===================== Account =====================
@router.post("/register", status_code=201)
def register(payload: VendorRegisterRequest, service: PrincipalService = Depends(get_vendor_service)):
    doc = service.register(payload.name, payload.email, payload.password, payload.phone_number, payload.address)
    return {"message": "Vendor registered. Please verify OTP sent to your email.", "vendor": public_profile(doc)}


@router.post("/verify-otp")
def verify_otp(payload: VerifyOTPRequest, service: PrincipalService = Depends(get_vendor_service)):
    doc = service.verify_otp(payload.email, payload.otp)
    return {"message": "Email verified successfully. You can now log in.", "vendor": public_profile(doc)}


@router.post("/resend-otp")
def resend_otp(payload: EmailBody, service: PrincipalService = Depends(get_vendor_service)):
    service.resend_otp(payload.email)
    return {"message": "OTP resent successfully."}


@router.post("/login")
def login(payload: LoginRequest, service: PrincipalService = Depends(get_vendor_service)):
    session = service.login(payload.email, payload.password)
    return {"message": "Login successful", **session}


@router.post("/logout")
def logout(vendor: Principal = Depends(current_vendor)):
    return {"message": "Logged out successfully. Please clear your token."}


@router.put("/update")
def update_vendor(payload: VendorUpdateRequest, vendor: Principal = Depends(current_vendor),
                  service: PrincipalService = Depends(get_vendor_service)):
    changes = payload.model_dump(include={"name", "phone_number", "address"})
    doc = service.update_profile(vendor, payload.email, changes, password=payload.password)
    return {"message": "Vendor profile updated successfully.", "vendor": public_profile(doc)}


@router.put("/update-password")
def update_password(payload: UpdatePasswordRequest, vendor: Principal = Depends(current_vendor),
                    service: PrincipalService = Depends(get_vendor_service)):
    service.update_password(vendor, payload.email, payload.current_password, payload.new_password)
    return {"message": "Password updated successfully."}


@router.delete("/delete")
def delete_vendor(request: Request, payload: DeleteAccountRequest, vendor: Principal = Depends(current_vendor),
                  service: PrincipalService = Depends(get_vendor_service)):
    cascade = partial(purge_vendor_resources, get_store(request))
    service.delete_account(vendor, payload.email, payload.password, cascade=cascade)
    return {"message": "Account deleted successfully. Please clear your token."}


@router.get("/dashboard")
def dashboard(vendor: Principal = Depends(current_vendor)):
    return {"message": f"Welcome to the vendor dashboard, {vendor.name}", "vendor": vendor.model_dump(mode="json")}


# ===================== Restaurant =====================
@router.post("/restaurant", status_code=201)
def add_restaurant(payload: RestaurantCreate, resources: VendorResources = Depends(get_vendor_resources)):
    doc = resources.create_restaurant(**payload.model_dump())
    return {"message": "Restaurant added successfully", "restaurant": serialize_doc(doc)}


@router.get("/restaurant")
def get_restaurant(resources: VendorResources = Depends(get_vendor_resources)):
    return {"message": "Restaurant fetched successfully", "restaurant": serialize_doc(resources.get_restaurant())}


@router.put("/restaurant/{restaurant_id}")
def update_restaurant(restaurant_id: str, payload: RestaurantUpdate,
                      resources: VendorResources = Depends(get_vendor_resources)):
    doc = resources.update_restaurant(restaurant_id, _changes(payload))
    return {"message": "Restaurant updated successfully", "restaurant": serialize_doc(doc)}


@router.delete("/restaurant/{restaurant_id}")
def delete_restaurant(restaurant_id: str, resources: VendorResources = Depends(get_vendor_resources)):
    resources.delete_restaurant(restaurant_id)
    return {"message": "Restaurant deleted successfully"}


# ===================== Items =====================
@router.post("/item", status_code=201)
def add_item(payload: ItemCreate, resources: VendorResources = Depends(get_vendor_resources)):
    doc = resources.create_item(**payload.model_dump())
    return {"message": "Item added successfully", "item": serialize_doc(doc)}


@router.get("/items")
def get_items(resources: VendorResources = Depends(get_vendor_resources)):
    return {"message": "Items fetched successfully", "items": [serialize_doc(d) for d in resources.list_items()]}


@router.get("/items/search")
def search_items(query: str = Query(""), resources: VendorResources = Depends(get_vendor_resources)):
    items = resources.search_items(query)
    return {"message": "Search results", "items": [serialize_doc(d) for d in items]}


@router.get("/item/{item_id}")
def get_item(item_id: str, resources: VendorResources = Depends(get_vendor_resources)):
    return {"message": "Item fetched successfully", "item": serialize_doc(resources.get_item(item_id))}


@router.put("/item/{item_id}")
def update_item(item_id: str, payload: ItemUpdate, resources: VendorResources = Depends(get_vendor_resources)):
    doc = resources.update_item(item_id, _changes(payload))
    return {"message": "Item updated successfully", "item": serialize_doc(doc)}


@router.delete("/item/{item_id}")
def delete_item(item_id: str, resources: VendorResources = Depends(get_vendor_resources)):
    resources.delete_item(item_id)
    return {"message": "Item deleted successfully"}


# ===================== Breakfast packages =====================
@router.post("/breakfast-package", status_code=201)
def add_breakfast_package(payload: PackageCreate, resources: VendorResources = Depends(get_vendor_resources)):
    doc = resources.create_package(**payload.model_dump())
    return {"message": "Breakfast package added successfully", "breakfast_package": serialize_doc(doc)}


@router.get("/breakfast-packages")
def get_breakfast_packages(resources: VendorResources = Depends(get_vendor_resources)):
    packages = [serialize_doc(p) for p in resources.list_packages()]
    return {"message": "Breakfast packages fetched successfully", "breakfast_packages": packages}


@router.get("/breakfast-package/{package_id}")
def get_breakfast_package(package_id: str, resources: VendorResources = Depends(get_vendor_resources)):
    doc = resources.get_package(package_id)
    return {"message": "Breakfast package fetched successfully", "breakfast_package": serialize_doc(doc)}


@router.put("/breakfast-package/{package_id}")
def update_breakfast_package(package_id: str, payload: PackageUpdate,
                             resources: VendorResources = Depends(get_vendor_resources)):
    doc = resources.update_package(package_id, _changes(payload))
    return {"message": "Breakfast package updated successfully", "breakfast_package": serialize_doc(doc)}


@router.delete("/breakfast-package/{package_id}")
def delete_breakfast_package(package_id: str, resources: VendorResources = Depends(get_vendor_resources)):
    resources.delete_package(package_id)
    return {"message": "Breakfast package deleted successfully"}
