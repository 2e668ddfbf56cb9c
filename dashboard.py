"""
Back-office operations for the admin and super-admin consoles.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.database import Database

from catalog import contains_ci, has_stock, product_to_client, quality_rating
from config import ADMIN_PASSCODE
from database import create_document, serialize_doc, to_object_id, utcnow
from errors import NotFound, PermissionDenied, ValidationFailed
from media import delete_images, upload_images
from relations import count_live_enquiries, detach_product, paginate_enquiries
from schemas import MAX_IMAGES, MIN_IMAGES, Product, ProductDetails, ProductImage
from security import public_user

logger = logging.getLogger(__name__)

ADMIN_PAGE_SIZE = 25
SUPER_ADMIN_PAGE_SIZE = 10


def _search_or(query: Optional[str], fields: List[str]) -> Dict[str, Any]:
    if not query:
        return {}
    return {"$or": [{field: contains_ci(query)} for field in fields]}


def product_search_criteria(query: Optional[str]) -> Dict[str, Any]:
    return _search_or(query, ["title", "category", "sub_category", "sub_sub_category"])


def user_search_criteria(query: Optional[str]) -> Dict[str, Any]:
    return _search_or(query, ["name", "email", "phone_number"])


# Products

def _variant_documents(variants, previous: Optional[List[dict]] = None) -> List[dict]:
    # keep variant ids stable across edits so cart lines keep pointing at them
    previous_ids = {v.get("size"): v.get("_id") for v in previous or []}
    documents = []
    for variant in variants:
        doc = variant.model_dump()
        doc["_id"] = previous_ids.pop(doc["size"], None) or ObjectId()
        documents.append(doc)
    return documents


def create_product(db: Database, data: Product) -> dict:
    variants = _variant_documents(data.variants)
    images = upload_images(data.images)
    document = data.model_dump(exclude={"images", "variants"})
    document.update(
        images=images, variants=variants, availability=has_stock(variants), rating=quality_rating(variants)
    )
    inserted_id = create_document(db, "product", document)
    logger.info("Created product %s (%s)", inserted_id, data.title)
    return db["product"].find_one({"_id": inserted_id})


def get_product(db: Database, product_id: str) -> dict:
    product = db["product"].find_one({"_id": to_object_id(product_id)})
    if not product:
        raise NotFound("Product not found")
    return product


def edit_product(
    db: Database, product_id: str, changes: Dict[str, Any], images: Optional[List[ProductImage]] = None
) -> dict:
    """Apply a partial edit and re-validate the whole product.

    New images replace the stored ones; the replaced hosted images are
    deleted afterwards.
    """
    product = get_product(db, product_id)
    current = {k: product[k] for k in ProductDetails.model_fields if k in product}
    current["variants"] = [
        {k: v for k, v in variant.items() if k != "_id"} for variant in product.get("variants", [])
    ]
    current.update({k: v for k, v in changes.items() if v is not None})

    details = ProductDetails.model_validate(current)
    variants = _variant_documents(details.variants, product.get("variants"))
    updates = details.model_dump(exclude={"variants"})
    updates.update(
        variants=variants, availability=has_stock(variants), rating=quality_rating(variants), updated_at=utcnow()
    )

    old_images = None
    if images:
        if not MIN_IMAGES <= len(images) <= MAX_IMAGES:
            raise ValidationFailed(f"You can upload from {MIN_IMAGES} to {MAX_IMAGES} images", ["images"])
        updates["images"] = upload_images(images)
        old_images = product.get("images", [])

    db["product"].update_one({"_id": product["_id"]}, {"$set": updates})
    if old_images:
        delete_images(old_images)
    return db["product"].find_one({"_id": product["_id"]})


def delete_product(db: Database, product_id: str) -> int:
    """Delete a product, its hosted images and its enquiry references.

    Returns the number of enquiries deleted because they became empty.
    """
    product = db["product"].find_one({"_id": to_object_id(product_id)})
    if not product:
        raise NotFound("Product not found or already deleted")
    delete_images(product.get("images", []))
    removed = detach_product(db, product["_id"])
    db["product"].delete_one({"_id": product["_id"]})
    logger.info("Deleted product %s; %d enquiries removed", product["_id"], removed)
    return removed


def categories_in_use(db: Database) -> Dict[str, List[str]]:
    return {
        "categories": sorted(db["product"].distinct("category")),
        "sub_categories": sorted(db["product"].distinct("sub_category")),
        "sub_sub_categories": sorted(db["product"].distinct("sub_sub_category")),
    }


def admin_search(db: Database, query: Optional[str] = None, page: int = 1) -> Dict[str, Any]:
    page = max(page, 1)
    criteria = product_search_criteria(query)
    total = db["product"].count_documents(criteria)
    cursor = (
        db["product"].find(criteria)
        .sort("created_at", DESCENDING)
        .skip((page - 1) * ADMIN_PAGE_SIZE)
        .limit(ADMIN_PAGE_SIZE)
    )
    return {
        "products": [product_to_client(p) for p in cursor],
        "enquiry_count": count_live_enquiries(db),
        "search_query": query or "",
        "current_page": page,
        "total_pages": math.ceil(total / ADMIN_PAGE_SIZE),
        "total_products": total,
    }


def make_admin(db: Database, user: dict, passcode: Optional[str]) -> dict:
    if not ADMIN_PASSCODE or passcode != ADMIN_PASSCODE:
        raise ValidationFailed("Invalid passcode!", ["passcode"])
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"role": "admin", "updated_at": utcnow()}})
    user["role"] = "admin"
    logger.info("User %s promoted to admin by passcode", user["_id"])
    return user


# Super admin

def _page(total: int, page: int, page_size: int) -> Dict[str, Any]:
    return {"current_page": page, "total_pages": math.ceil(total / page_size), "total": total}


def _users_page(db: Database, criteria: Dict[str, Any], page: int, page_size: int) -> Dict[str, Any]:
    total = db["user"].count_documents(criteria)
    cursor = db["user"].find(criteria).sort("created_at", DESCENDING).skip((page - 1) * page_size).limit(page_size)
    return {"items": [public_user(u) for u in cursor], **_page(total, page, page_size)}


def super_admin_dashboard(
    db: Database,
    query: Optional[str] = None,
    user_page: int = 1,
    admin_page: int = 1,
    product_page: int = 1,
    enquiry_page: int = 1,
) -> Dict[str, Any]:
    size = SUPER_ADMIN_PAGE_SIZE
    user_page, admin_page, product_page, enquiry_page = (
        max(p, 1) for p in (user_page, admin_page, product_page, enquiry_page)
    )
    people = user_search_criteria(query)

    product_criteria = product_search_criteria(query)
    product_total = db["product"].count_documents(product_criteria)
    products = (
        db["product"].find(product_criteria, {"images": 0})
        .sort("created_at", DESCENDING)
        .skip((product_page - 1) * size)
        .limit(size)
    )

    enquiries = paginate_enquiries(db, _search_or(query, ["email", "phone_number", "status"]), enquiry_page, size)

    return {
        "users": _users_page(db, dict(people, role="user"), user_page, size),
        "admins": _users_page(db, dict(people, role="admin"), admin_page, size),
        "products": {"items": [serialize_doc(p) for p in products], **_page(product_total, product_page, size)},
        "enquiries": {"items": enquiries["enquiries"], **_page(enquiries["total"], enquiry_page, size)},
        "search_query": query or "",
    }


def list_users(
    db: Database, query: Optional[str] = None, role: Optional[str] = None, page: int = 1, limit: int = 10
) -> Dict[str, Any]:
    page = max(page, 1)
    criteria = user_search_criteria(query)
    if role:
        criteria["role"] = role
    result = _users_page(db, criteria, page, limit)
    return {"users": result.pop("items"), **result}


def update_user_role(db: Database, user_id: str, role: str) -> dict:
    if role not in ("user", "admin"):
        raise ValidationFailed("Invalid role specified", ["role"])
    oid = to_object_id(user_id)
    target = db["user"].find_one({"_id": oid}, {"role": 1})
    if target is None:
        raise NotFound("User not found")
    if target.get("role") == "super-admin":
        raise PermissionDenied("Cannot change the role of a super admin account", clear_cookie=False)
    db["user"].update_one({"_id": oid}, {"$set": {"role": role, "updated_at": utcnow()}})
    return db["user"].find_one({"_id": oid})


def delete_user(db: Database, user_id: str) -> None:
    oid = to_object_id(user_id)
    target = db["user"].find_one({"_id": oid}, {"role": 1})
    if target is None:
        raise NotFound("User not found")
    if target.get("role") == "super-admin":
        raise PermissionDenied("Cannot delete a super admin account", clear_cookie=False)
    db["user"].delete_one({"_id": oid})
    db["wishlist"].delete_many({"user": oid})
    logger.info("Deleted user %s", oid)
