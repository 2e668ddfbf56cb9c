"""
Catalog queries: filtering, computed sorts, pagination and the client-facing
product projection (binary images become inline data URIs).
"""

import base64
import math
import re
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from database import serialize_doc

PAGE_SIZE = 20

SORT_CREATED = "createdAt"
SORT_PRICE = "variants.0.price"
SORT_RATING = "rating"

_SORT_ALIASES = {
    "createdAt": SORT_CREATED,
    "created_at": SORT_CREATED,
    "variants.0.price": SORT_PRICE,
    "price": SORT_PRICE,
    "rating": SORT_RATING,
}

# sort keys stored on the product itself; `rating` is kept in step with the
# first variant by every save, like `availability`
_SORT_FIELDS = {SORT_CREATED: "created_at", SORT_RATING: "rating"}


def effective_price(variant: Optional[dict]) -> float:
    """Discount is an absolute sale price; it wins whenever it is set."""
    if not variant:
        return 0
    discount = variant.get("discount") or 0
    return discount if discount > 0 else variant.get("price", 0)


def find_variant(product: dict, size: Optional[str]) -> Optional[dict]:
    for variant in product.get("variants", []):
        if variant.get("size") == size:
            return variant
    return None


def resolve_variant(product: dict, size: Optional[str]) -> Optional[dict]:
    """Variant for `size`, falling back to the first variant when the size is absent."""
    variant = find_variant(product, size)
    if variant is None and product.get("variants"):
        return product["variants"][0]
    return variant


def has_stock(variants: Iterable[dict]) -> bool:
    return any(v.get("quantity", 0) > 0 for v in variants)


def quality_rating(variants: List[dict]) -> int:
    """First-variant quality as a whole-number rating; anything non-numeric rates 0."""
    if not variants:
        return 0
    try:
        return int(float(variants[0].get("quality") or 0))
    except (TypeError, ValueError, OverflowError):
        return 0


def image_to_client(image: Any) -> Any:
    if isinstance(image, dict) and image.get("data") is not None:
        encoded = base64.b64encode(bytes(image["data"])).decode("ascii")
        return f"data:{image.get('content_type') or 'image/jpeg'};base64,{encoded}"
    if isinstance(image, dict):
        return {k: v for k, v in image.items() if k != "_id"}
    return image


def product_to_client(product: dict) -> dict:
    doc = dict(product)
    doc["images"] = [image_to_client(img) for img in product.get("images", [])]
    return serialize_doc(doc)


def fetch_products(db: Database, ids: Iterable[ObjectId]) -> Dict[ObjectId, dict]:
    """Resolve many product references at once; dangling ids are simply absent."""
    unique = list({oid for oid in ids if isinstance(oid, ObjectId)})
    if not unique:
        return {}
    return {p["_id"]: p for p in db["product"].find({"_id": {"$in": unique}})}


def contains_ci(value: str) -> dict:
    return {"$regex": re.escape(value), "$options": "i"}


def build_filter(
    query: Optional[str] = None,
    category: Optional[str] = None,
    sub_category: Optional[str] = None,
    sub_sub_category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
) -> Dict[str, Any]:
    criteria: Dict[str, Any] = {}
    if query:
        criteria["$or"] = [
            {"title": contains_ci(query)},
            {"category": contains_ci(query)},
            {"sub_category": contains_ci(query)},
            {"sub_sub_category": contains_ci(query)},
        ]
    if category:
        criteria["category"] = category
    if sub_category:
        criteria["sub_category"] = sub_category
    if sub_sub_category:
        criteria["sub_sub_category"] = sub_sub_category
    price_filter: Dict[str, Any] = {}
    if min_price is not None:
        price_filter["$gte"] = float(min_price)
    if max_price is not None:
        price_filter["$lte"] = float(max_price)
    if price_filter:
        # bounds apply to the listed price of any single variant
        criteria["variants"] = {"$elemMatch": {"price": price_filter}}
    return criteria


def normalize_sort(sort_by: Optional[str]) -> str:
    return _SORT_ALIASES.get(sort_by or SORT_CREATED, SORT_CREATED)


def price_sort_pipeline(criteria: Dict[str, Any], direction: int, skip: int, limit: int) -> List[dict]:
    """Aggregation sorting on the first variant's effective price.

    Products with equal keys have an undefined tie-break: they come back in
    whatever order the server's sort stage yields.
    """
    sort_key = {
        "$cond": [
            {"$gt": ["$_first_variant.discount", 0]},
            "$_first_variant.discount",
            "$_first_variant.price",
        ]
    }
    return [
        {"$match": criteria},
        {"$addFields": {"_first_variant": {"$arrayElemAt": ["$variants", 0]}}},
        {"$addFields": {"_sort_key": sort_key}},
        {"$sort": {"_sort_key": direction}},
        {"$skip": skip},
        {"$limit": limit},
        {"$project": {"_first_variant": 0, "_sort_key": 0}},
    ]


def paginate(total: int, page: int, page_size: int = PAGE_SIZE) -> Dict[str, Any]:
    return {
        "current_page": page,
        "total_pages": math.ceil(total / page_size),
        "has_next_page": page * page_size < total,
        "has_prev_page": page > 1,
    }


def search_products(
    db: Database,
    query: Optional[str] = None,
    category: Optional[str] = None,
    sub_category: Optional[str] = None,
    sub_sub_category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort_by: Optional[str] = None,
    sort_order: str = "desc",
    page: int = 1,
) -> Dict[str, Any]:
    page = max(page, 1)
    criteria = build_filter(query, category, sub_category, sub_sub_category, min_price, max_price)
    sort_key = normalize_sort(sort_by)
    direction = DESCENDING if sort_order == "desc" else ASCENDING
    skip = (page - 1) * PAGE_SIZE

    total = db["product"].count_documents(criteria)
    if sort_key == SORT_PRICE:
        products = list(db["product"].aggregate(price_sort_pipeline(criteria, direction, skip, PAGE_SIZE)))
    else:
        cursor = db["product"].find(criteria).sort(_SORT_FIELDS[sort_key], direction).skip(skip).limit(PAGE_SIZE)
        products = list(cursor)

    return {
        "products": [product_to_client(p) for p in products],
        "total_products": total,
        "sort_by": sort_key,
        "sort_order": "desc" if direction == DESCENDING else "asc",
        "pagination": paginate(total, page),
    }


def related_products(db: Database, product: dict, limit: int = 4) -> List[dict]:
    cursor = db["product"].find(
        {
            "_id": {"$ne": product["_id"]},
            "category": product.get("category"),
            "sub_category": product.get("sub_category"),
        }
    ).limit(limit)
    return [product_to_client(p) for p in cursor]
