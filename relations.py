"""
Wishlist and enquiry managers.

Both hold weak references to products. Deleting a product does not cascade
here; instead every read filters out references that no longer resolve and
writes the pruned list back before answering, so a dangling product is
never returned twice.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.database import Database

from catalog import fetch_products, product_to_client
from database import create_document, serialize_doc, to_object_id, utcnow
from errors import NotFound, ValidationFailed
from schemas import ENQUIRY_STATUSES

logger = logging.getLogger(__name__)


def prune_references(db: Database, entries: List[dict]) -> Tuple[List[dict], Dict[ObjectId, dict]]:
    products = fetch_products(db, (e.get("product") for e in entries))
    return [e for e in entries if e.get("product") in products], products


# Wishlist

def get_or_create_wishlist(db: Database, user: dict) -> dict:
    wishlist = db["wishlist"].find_one({"user": user["_id"]})
    if wishlist is None:
        inserted_id = create_document(db, "wishlist", {"user": user["_id"], "products": []})
        wishlist = db["wishlist"].find_one({"_id": inserted_id})
    return wishlist


def read_wishlist(db: Database, user: dict) -> List[dict]:
    wishlist = get_or_create_wishlist(db, user)
    entries = wishlist.get("products", [])
    valid, products = prune_references(db, entries)
    if len(valid) != len(entries):
        logger.info("Pruned %d deleted products from wishlist %s", len(entries) - len(valid), wishlist["_id"])
        db["wishlist"].update_one({"_id": wishlist["_id"]}, {"$set": {"products": valid, "updated_at": utcnow()}})
    result = []
    for entry in valid:
        item = product_to_client(products[entry["product"]])
        item["added_at"] = entry.get("added_at")
        result.append(item)
    return result


def add_to_wishlist(db: Database, user: dict, product_id: str) -> bool:
    """Returns False when the product was already on the list."""
    oid = to_object_id(product_id)
    if db["product"].find_one({"_id": oid}, {"_id": 1}) is None:
        raise NotFound("Product not found")
    wishlist = get_or_create_wishlist(db, user)
    if any(e.get("product") == oid for e in wishlist.get("products", [])):
        return False
    db["wishlist"].update_one(
        {"_id": wishlist["_id"], "products.product": {"$ne": oid}},
        {"$push": {"products": {"product": oid, "added_at": utcnow()}}, "$set": {"updated_at": utcnow()}},
    )
    return True


def remove_from_wishlist(db: Database, user: dict, product_id: str) -> None:
    oid = to_object_id(product_id)
    wishlist = db["wishlist"].find_one({"user": user["_id"]})
    if wishlist is None:
        raise NotFound("Wishlist not found")
    db["wishlist"].update_one(
        {"_id": wishlist["_id"]},
        {"$pull": {"products": {"product": oid}}, "$set": {"updated_at": utcnow()}},
    )


def in_wishlist(db: Database, user: Optional[dict], product_id: str) -> bool:
    if user is None or not ObjectId.is_valid(product_id):
        return False
    return db["wishlist"].count_documents({"user": user["_id"], "products.product": ObjectId(product_id)}) > 0


# Enquiries

def create_enquiry(db: Database, user: dict, email: str, phone_number: str, items: List[Dict[str, Any]]) -> dict:
    if not items:
        raise ValidationFailed("At least one product is required", ["products"])
    products = []
    for item in items:
        products.append({"product": to_object_id(item["product_id"]), "quantity": int(item["quantity"])})
    missing = set(p["product"] for p in products) - set(fetch_products(db, (p["product"] for p in products)))
    if missing:
        raise NotFound("Product not found")
    inserted_id = create_document(
        db,
        "enquiry",
        {
            "user": user["_id"],
            "email": email.strip().lower(),
            "phone_number": phone_number.strip(),
            "products": products,
            "status": "pending",
        },
    )
    return db["enquiry"].find_one({"_id": inserted_id})


def _repair_enquiry(db: Database, enquiry: dict, products: Dict[ObjectId, dict]) -> List[dict]:
    entries = enquiry.get("products", [])
    valid = [e for e in entries if e.get("product") in products]
    if len(valid) != len(entries):
        logger.info("Pruned %d deleted products from enquiry %s", len(entries) - len(valid), enquiry["_id"])
        db["enquiry"].update_one({"_id": enquiry["_id"]}, {"$set": {"products": valid, "updated_at": utcnow()}})
    return valid


def _enquiry_to_client(enquiry: dict, entries: List[dict], products: Dict[ObjectId, dict], users=None) -> dict:
    doc = serialize_doc({k: v for k, v in enquiry.items() if k != "products"})
    doc["products"] = []
    for entry in entries:
        product = products[entry["product"]]
        doc["products"].append(
            {
                "product": {
                    "id": str(product["_id"]),
                    "title": product.get("title") or "Product not found",
                    "images": product_to_client(product)["images"],
                    "description": product.get("description") or "No description available",
                    "category": product.get("category") or "N/A",
                    "variants": serialize_doc(product.get("variants", [])),
                },
                "quantity": entry.get("quantity", 1),
            }
        )
    if users is not None:
        owner = users.get(enquiry.get("user"))
        doc["user"] = (
            {
                "id": str(owner["_id"]),
                "name": owner.get("name"),
                "email": owner.get("email"),
                "phone_number": owner.get("phone_number"),
            }
            if owner
            else None
        )
    return doc


# stored enquiries that still list at least one product
LIVE_ENQUIRY = {"products.0": {"$exists": True}}


def _project_enquiries(db: Database, enquiries: List[dict], with_users: bool = False) -> List[dict]:
    products = fetch_products(db, (e.get("product") for q in enquiries for e in q.get("products", [])))
    users = None
    if with_users:
        user_ids = list({q.get("user") for q in enquiries})
        users = {u["_id"]: u for u in db["user"].find({"_id": {"$in": user_ids}})}
    result = []
    for enquiry in enquiries:
        valid = _repair_enquiry(db, enquiry, products)
        if not valid:
            continue
        result.append(_enquiry_to_client(enquiry, valid, products, users))
    return result


def read_enquiries(db: Database, criteria: Dict[str, Any], with_users: bool = False) -> List[dict]:
    """Load, repair and project enquiries, newest first.

    Enquiries left with no live product are hidden from the result but kept
    in storage.
    """
    enquiries = list(db["enquiry"].find(criteria).sort("created_at", DESCENDING))
    return _project_enquiries(db, enquiries, with_users)


def paginate_enquiries(db: Database, criteria: Dict[str, Any], page: int, limit: int) -> Dict[str, Any]:
    """One page of live enquiries, counted and sliced by MongoDB.

    Only the enquiries on the requested page are repaired. One whose products
    all vanished since the last detach drops out of the page.
    """
    page, limit = max(page, 1), max(limit, 1)
    criteria = {**criteria, **LIVE_ENQUIRY}
    total = db["enquiry"].count_documents(criteria)
    cursor = db["enquiry"].find(criteria).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
    return {
        "enquiries": _project_enquiries(db, list(cursor), with_users=True),
        "total": total,
        "page": page,
        "total_pages": -(-total // limit),
        "has_more": page * limit < total,
    }


def count_live_enquiries(db: Database) -> int:
    return db["enquiry"].count_documents(LIVE_ENQUIRY)


def update_enquiry_status(db: Database, enquiry_id: str, status: str, notes: Optional[str] = None) -> dict:
    if status not in ENQUIRY_STATUSES:
        raise ValidationFailed(f"'{status}' is not a valid status", ["status"])
    updates: Dict[str, Any] = {"status": status, "updated_at": utcnow()}
    if notes:
        updates["notes"] = notes.strip()
    oid = to_object_id(enquiry_id)
    result = db["enquiry"].update_one({"_id": oid}, {"$set": updates})
    if result.matched_count == 0:
        raise NotFound("Enquiry not found")
    return db["enquiry"].find_one({"_id": oid})


def delete_enquiry(db: Database, enquiry_id: str) -> None:
    result = db["enquiry"].delete_one({"_id": to_object_id(enquiry_id)})
    if result.deleted_count == 0:
        raise NotFound("Enquiry not found")


def detach_product(db: Database, product_id: ObjectId) -> int:
    """Remove a product from every enquiry; enquiries left empty are deleted."""
    affected = [e["_id"] for e in db["enquiry"].find({"products.product": product_id}, {"_id": 1})]
    if not affected:
        return 0
    db["enquiry"].update_many(
        {"_id": {"$in": affected}},
        {"$pull": {"products": {"product": product_id}}, "$set": {"updated_at": utcnow()}},
    )
    return db["enquiry"].delete_many({"_id": {"$in": affected}, "products": {"$size": 0}}).deleted_count
