"""
Account data embedded on the user document: addresses, recently viewed
products and the phone number.
"""

import logging
from typing import List

from bson import ObjectId
from pymongo.database import Database

from catalog import fetch_products, product_to_client
from database import serialize_doc, to_object_id, utcnow
from errors import DuplicateField, NotFound
from schemas import Address

logger = logging.getLogger(__name__)

RECENTLY_VIEWED_LIMIT = 20


def _save(db: Database, user: dict, **fields) -> None:
    fields["updated_at"] = utcnow()
    db["user"].update_one({"_id": user["_id"]}, {"$set": fields})
    user.update(fields)


# Addresses

def _find_address(addresses: List[dict], address_id: str) -> dict:
    oid = to_object_id(address_id)
    for address in addresses:
        if address.get("_id") == oid:
            return address
    raise NotFound("Address not found")


def _only_default(addresses: List[dict], default: dict) -> None:
    for address in addresses:
        address["is_default"] = address is default


def add_address(db: Database, user: dict, data: Address) -> List[dict]:
    addresses = [dict(a) for a in user.get("addresses", [])]
    address = dict(data.model_dump(), _id=ObjectId())
    # the first address is always the default
    address["is_default"] = data.is_default or not addresses
    addresses.append(address)
    if address["is_default"]:
        _only_default(addresses, address)
    _save(db, user, addresses=addresses)
    return serialize_doc(addresses)


def update_address(db: Database, user: dict, address_id: str, data: Address) -> List[dict]:
    addresses = [dict(a) for a in user.get("addresses", [])]
    address = _find_address(addresses, address_id)
    address.update(data.model_dump())
    if address["is_default"]:
        _only_default(addresses, address)
    _save(db, user, addresses=addresses)
    return serialize_doc(addresses)


def delete_address(db: Database, user: dict, address_id: str) -> List[dict]:
    addresses = [dict(a) for a in user.get("addresses", [])]
    address = _find_address(addresses, address_id)
    addresses.remove(address)
    if address.get("is_default") and addresses:
        _only_default(addresses, addresses[0])
    _save(db, user, addresses=addresses)
    return serialize_doc(addresses)


def set_default_address(db: Database, user: dict, address_id: str) -> List[dict]:
    addresses = [dict(a) for a in user.get("addresses", [])]
    _only_default(addresses, _find_address(addresses, address_id))
    _save(db, user, addresses=addresses)
    return serialize_doc(addresses)


# Recently viewed

def record_view(db: Database, user: dict, product_id: str) -> None:
    oid = to_object_id(product_id)
    entries = [e for e in user.get("recently_viewed", []) if e.get("product") != oid]
    entries.insert(0, {"product": oid, "viewed_at": utcnow()})
    _save(db, user, recently_viewed=entries[:RECENTLY_VIEWED_LIMIT])


def recently_viewed(db: Database, user: dict) -> List[dict]:
    entries = sorted(user.get("recently_viewed", []), key=lambda e: e["viewed_at"], reverse=True)
    products = fetch_products(db, (e.get("product") for e in entries))
    result = []
    for entry in entries:
        product = products.get(entry.get("product"))
        if product is None:
            continue
        item = product_to_client(product)
        item["viewed_at"] = entry["viewed_at"]
        result.append(item)
    return result


def clear_recently_viewed(db: Database, user: dict) -> None:
    _save(db, user, recently_viewed=[])


# Phone

def update_phone(db: Database, user: dict, phone_number: str) -> dict:
    phone_number = phone_number.strip()
    taken = db["user"].find_one({"phone_number": phone_number, "_id": {"$ne": user["_id"]}}, {"_id": 1})
    if taken:
        raise DuplicateField("phone_number", "This phone number is already registered to another account")
    _save(db, user, phone_number=phone_number, phone_verified=True)
    return user


def find_order(user: dict, order_id: str) -> dict:
    for order in user.get("orders", []):
        if str(order.get("_id")) == order_id:
            return order
    raise NotFound("Order not found")
