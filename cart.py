"""
Cart engine

The cart lives embedded on the user document. Every mutation rewrites only
the `cart` field and is guarded by `cart_version`, so two requests racing on
the same cart cannot silently overwrite each other's stock-checked result.
"""

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database

from catalog import effective_price, fetch_products, find_variant, product_to_client, resolve_variant
from database import serialize_doc, to_object_id, utcnow
from errors import Conflict, InsufficientStock, NotFound, OutOfStock, ValidationFailed

logger = logging.getLogger(__name__)


def _version_filter(user: dict) -> Dict[str, Any]:
    version = user.get("cart_version", 0)
    if version:
        return {"_id": user["_id"], "cart_version": version}
    # documents written before versioning carry no counter
    return {"_id": user["_id"], "cart_version": {"$in": [0, None]}}


def save_cart(db: Database, user: dict, cart: List[dict]) -> bool:
    result = db["user"].update_one(
        _version_filter(user),
        {"$set": {"cart": cart, "updated_at": utcnow()}, "$inc": {"cart_version": 1}},
    )
    if result.matched_count == 0:
        return False
    user["cart"] = cart
    user["cart_version"] = user.get("cart_version", 0) + 1
    return True


def _commit(db: Database, user: dict, cart: List[dict]) -> None:
    if not save_cart(db, user, cart):
        raise Conflict("Cart was modified by another request, please retry")


def _load_product(db: Database, product_id: Any) -> dict:
    product = db["product"].find_one({"_id": to_object_id(product_id)})
    if not product:
        raise NotFound("Product not found")
    return product


def find_line(cart: List[dict], line_or_product_id: str) -> Optional[dict]:
    """Match on the line id first, then on the product id."""
    if not ObjectId.is_valid(line_or_product_id):
        return None
    oid = ObjectId(line_or_product_id)
    for line in cart:
        if line.get("_id") == oid:
            return line
    for line in cart:
        if line.get("product") == oid:
            return line
    return None


def add_to_cart(db: Database, user: dict, product_id: str, size: str = "None", quantity: int = 1) -> dict:
    product = _load_product(db, product_id)
    if not product.get("availability", False):
        raise OutOfStock(f"{product.get('title', 'Product')} is out of stock")

    variant = resolve_variant(product, size)
    if variant is None:
        raise OutOfStock("Product has no purchasable variants")
    available = variant.get("quantity", 0)
    if available < quantity:
        raise InsufficientStock(available, variant.get("size"))

    cart = [dict(line) for line in user.get("cart", [])]
    existing = next(
        (line for line in cart if line.get("product") == product["_id"] and line.get("size") == variant.get("size")),
        None,
    )
    if existing is not None:
        merged = existing["quantity"] + quantity
        if merged > available:
            raise InsufficientStock(
                available, variant.get("size"), f"Cannot add more than {available} items of this size"
            )
        existing["quantity"] = merged
        existing["variant_id"] = variant.get("_id")
        line = existing
    else:
        line = {
            "_id": ObjectId(),
            "product": product["_id"],
            "variant_id": variant.get("_id"),
            "quantity": quantity,
            "size": variant.get("size"),
            "added_at": utcnow(),
        }
        cart.append(line)

    _commit(db, user, cart)
    return {"line": serialize_doc(line), "product": product, "merged": existing is not None}


def update_cart_line(
    db: Database, user: dict, line_or_product_id: str, size: Optional[str] = None, quantity: int = 1
) -> dict:
    cart = [dict(line) for line in user.get("cart", [])]
    line = find_line(cart, line_or_product_id)
    if line is None:
        raise NotFound("Product not found in cart")

    # re-resolve against live stock, not the reference stored on the line
    product = _load_product(db, line["product"])
    variant = find_variant(product, size or line.get("size"))
    if variant is None:
        raise NotFound("Selected size not available")
    if any(
        other is not line and other.get("product") == line["product"] and other.get("size") == variant.get("size")
        for other in cart
    ):
        raise ValidationFailed("This size is already in your cart, update that item instead", ["size"])
    available = variant.get("quantity", 0)
    if available < quantity:
        raise InsufficientStock(available, variant.get("size"))

    line["quantity"] = quantity
    line["size"] = variant.get("size")
    line["variant_id"] = variant.get("_id")
    _commit(db, user, cart)
    return serialize_doc(line)


def remove_cart_line(db: Database, user: dict, line_or_product_id: str) -> dict:
    cart = [dict(line) for line in user.get("cart", [])]
    line = find_line(cart, line_or_product_id)
    if line is None:
        raise NotFound("Product not found in cart")
    cart.remove(line)
    _commit(db, user, cart)
    return serialize_doc(line)


def cart_summary(db: Database, user: dict) -> Dict[str, Any]:
    """Totals for every line whose product still exists.

    Lines pointing at deleted products are dropped from the result and from
    the stored cart.
    """
    cart = user.get("cart", [])
    products = fetch_products(db, (line.get("product") for line in cart))

    subtotal = 0
    total = 0
    items = []
    kept = []
    for line in cart:
        product = products.get(line.get("product"))
        if product is None:
            continue
        kept.append(line)
        variant = resolve_variant(product, line.get("size"))
        price = variant.get("price", 0) if variant else 0
        unit = effective_price(variant)
        subtotal += price * line["quantity"]
        total += unit * line["quantity"]
        item = serialize_doc(line)
        item["product"] = product_to_client(product)
        item["unit_price"] = price
        item["effective_price"] = unit
        items.append(item)

    if len(kept) != len(cart):
        logger.info("Pruning %d dangling cart lines for user %s", len(cart) - len(kept), user["_id"])
        if not save_cart(db, user, kept):
            logger.warning("Skipped cart pruning for user %s: cart changed concurrently", user["_id"])

    return {
        "items": items,
        "summary": {"subtotal": subtotal, "discount": subtotal - total, "total": total},
    }
