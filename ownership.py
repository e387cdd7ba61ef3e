"""
Vendor-owned resources: the restaurant, menu items and breakfast packages.

Every query carries vendor_id of the acting vendor. A record id on its own is
never enough; ids that are malformed, unknown or owned by someone else all
come back as NotFound.
"""

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

import database
from database import Store, to_object_id
from errors import BusinessRuleViolation, NotFound, ValidationFailed
from schemas import Item, Package, Restaurant

logger = logging.getLogger(__name__)


def purge_vendor_resources(store: Store, vendor_id: ObjectId, session=None) -> Dict[str, int]:
    """Remove everything a vendor owns. Children go first so none outlive the vendor."""
    removed = {
        "restaurant": store.delete_documents(database.RESTAURANTS, {"vendor_id": vendor_id}, session=session),
        "items": store.delete_documents(database.ITEMS, {"vendor_id": vendor_id}, session=session),
        "packages": store.delete_documents(database.PACKAGES, {"vendor_id": vendor_id}, session=session),
    }
    logger.info("Purged resources of vendor %s: %s", vendor_id, removed)
    return removed


class VendorResources:
    def __init__(self, store: Store, vendor_id: ObjectId, full_text_search: bool = True):
        self.store = store
        self.vendor_id = vendor_id
        self.full_text_search = full_text_search

    def _scope(self, _id: Any = None) -> Optional[dict]:
        scope = {"vendor_id": self.vendor_id}
        if _id is not None:
            oid = to_object_id(_id)
            if oid is None:
                return None
            scope["_id"] = oid
        return scope

    def _get(self, collection: str, _id: Any, label: str) -> dict:
        scope = self._scope(_id)
        doc = self.store.find_one(collection, scope) if scope else None
        if not doc:
            raise NotFound(f"{label} not found")
        return doc

    def _update(self, collection: str, _id: Any, changes: dict, label: str) -> dict:
        scope = self._scope(_id)
        updated = self.store.update_document(collection, scope, changes) if scope else None
        if updated is None:
            raise NotFound(f"{label} not found")
        return updated

    def _delete(self, collection: str, _id: Any, label: str) -> None:
        scope = self._scope(_id)
        if not scope or not self.store.delete_document(collection, scope):
            raise NotFound(f"{label} not found")

    # restaurant

    def create_restaurant(self, name: str, address: str, phone: str, operating_hours: str) -> dict:
        if self.store.find_one(database.RESTAURANTS, self._scope()):
            raise BusinessRuleViolation("Restaurant already exists for this vendor", error="restaurant_exists")
        record = Restaurant(vendor_id=self.vendor_id, name=name, address=address, phone=phone,
                            operating_hours=operating_hours)
        try:
            return self.store.create_document(database.RESTAURANTS, record)
        except DuplicateKeyError:
            raise BusinessRuleViolation("Restaurant already exists for this vendor", error="restaurant_exists")

    def get_restaurant(self) -> dict:
        doc = self.store.find_one(database.RESTAURANTS, self._scope())
        if not doc:
            raise NotFound("Restaurant not found")
        return doc

    def update_restaurant(self, restaurant_id: Any, changes: dict) -> dict:
        return self._update(database.RESTAURANTS, restaurant_id, changes, "Restaurant")

    def delete_restaurant(self, restaurant_id: Any) -> None:
        self._delete(database.RESTAURANTS, restaurant_id, "Restaurant")

    # items

    def create_item(self, **fields) -> dict:
        record = Item(vendor_id=self.vendor_id, **fields)
        return self.store.create_document(database.ITEMS, record)

    def list_items(self) -> List[dict]:
        return self.store.get_documents(database.ITEMS, self._scope(), sort=[("created_at", DESCENDING)])

    def get_item(self, item_id: Any) -> dict:
        return self._get(database.ITEMS, item_id, "Item")

    def update_item(self, item_id: Any, changes: dict) -> dict:
        return self._update(database.ITEMS, item_id, changes, "Item")

    def delete_item(self, item_id: Any) -> None:
        self._delete(database.ITEMS, item_id, "Item")

    def search_items(self, query: str) -> List[dict]:
        query = (query or "").strip()
        if not query:
            raise ValidationFailed("Search query is required")
        if self.full_text_search:
            return self.store.get_documents(
                database.ITEMS,
                {**self._scope(), "$text": {"$search": query}},
                projection={"score": {"$meta": "textScore"}},
                sort=[("score", {"$meta": "textScore"})],
            )
        pattern = {"$regex": query, "$options": "i"}
        return self.store.get_documents(
            database.ITEMS,
            {**self._scope(), "$or": [{"name": pattern}, {"description": pattern}]},
            sort=[("name", 1)],
        )

    # breakfast packages

    def _owned_item_ids(self, item_ids: List[str]) -> List[ObjectId]:
        oids = [to_object_id(i) for i in item_ids]
        if not oids or any(oid is None for oid in oids):
            raise ValidationFailed("Invalid item ID format")
        found = self.store.get_documents(database.ITEMS, {"_id": {"$in": oids}, **self._scope()},
                                         projection={"_id": 1})
        if len({doc["_id"] for doc in found}) != len(set(oids)):
            raise BusinessRuleViolation("Some items are invalid or not authorized", error="invalid_items")
        return oids

    def _populate(self, packages: List[dict]) -> List[dict]:
        wanted = {oid for pkg in packages for oid in pkg.get("items", [])}
        if not wanted:
            return packages
        items = {doc["_id"]: doc for doc in
                 self.store.get_documents(database.ITEMS, {"_id": {"$in": list(wanted)}, **self._scope()})}
        for pkg in packages:
            pkg["items"] = [items[oid] for oid in pkg.get("items", []) if oid in items]
        return packages

    def create_package(self, package_name: str, price: float, items: List[str],
                       description: Optional[str] = None, image_url: Optional[str] = None,
                       is_active: bool = True) -> dict:
        record = Package(
            vendor_id=self.vendor_id,
            package_name=package_name,
            description=description,
            price=price,
            items=self._owned_item_ids(items),
            image_url=image_url or "",
            is_active=is_active,
        )
        return self.store.create_document(database.PACKAGES, record)

    def list_packages(self) -> List[dict]:
        return self._populate(self.store.get_documents(database.PACKAGES, self._scope(),
                                                       sort=[("created_at", DESCENDING)]))

    def get_package(self, package_id: Any) -> dict:
        return self._populate([self._get(database.PACKAGES, package_id, "Breakfast package")])[0]

    def update_package(self, package_id: Any, changes: dict) -> dict:
        # existence first, so a foreign package id is NotFound rather than an item error
        self._get(database.PACKAGES, package_id, "Breakfast package")
        if "items" in changes:
            changes = {**changes, "items": self._owned_item_ids(changes["items"])}
        return self._update(database.PACKAGES, package_id, changes, "Breakfast package")

    def delete_package(self, package_id: Any) -> None:
        self._delete(database.PACKAGES, package_id, "Breakfast package")
