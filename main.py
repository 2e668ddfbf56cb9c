import logging
import secrets
from contextlib import asynccontextmanager
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.middleware.sessions import SessionMiddleware

import accounts
import cart as cart_engine
import dashboard
import database
import identity
import mailer
import relations
from catalog import product_to_client, related_products, search_products
from config import COOKIE_SECURE, CORS_ORIGINS, LOG_LEVEL, PORT, SESSION_SECRET, TOKEN_COOKIE
from database import create_document, ensure_indexes, get_db, serialize_doc, to_object_id
from errors import DuplicateField, NotAuthenticated, NotFound, PermissionDenied, ValidationFailed, register_exception_handlers
from schemas import TAXONOMY, Address, Product as ProductSchema, ProductImage, User as UserSchema, Variant
from security import (
    REFRESH_HEADER,
    apply_refreshed_token,
    hash_password,
    issue_token,
    optional_user,
    public_user,
    require_admin,
    require_super_admin,
    require_user,
    revoke_token,
    set_token_cookie,
    verify_password,
)

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        try:
            ensure_indexes(database.db)
        except PyMongoError as exc:
            logger.error("Could not ensure MongoDB indexes: %s", exc)
    yield


app = FastAPI(title="ATHEERA API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REFRESH_HEADER],
)
app.add_middleware(SessionMiddleware, secret_key=SESSION_SECRET, same_site="lax", https_only=COOKIE_SECURE)

register_exception_handlers(app)


@app.middleware("http")
async def deliver_refreshed_token(request: Request, call_next):
    response = await call_next(request)
    apply_refreshed_token(request, response)
    return response


# Utilities

def start_session(db: Database, user: dict, response: Response) -> str:
    token = issue_token(db, user)
    set_token_cookie(response, token)
    return token


def ensure_unique(db: Database, email: Optional[str] = None, phone_number: Optional[str] = None) -> None:
    if email and db["user"].find_one({"email": email}, {"_id": 1}):
        raise DuplicateField("email", "Email already registered")
    if phone_number and db["user"].find_one({"phone_number": phone_number}, {"_id": 1}):
        raise DuplicateField("phone_number", "Phone number already registered")


def insert_user(db: Database, **fields) -> dict:
    user_model = UserSchema(**fields)
    inserted_id = create_document(db, "user", user_model.to_document())
    return db["user"].find_one({"_id": inserted_id})


def set_flash(request: Request, success: Optional[str] = None, error: Optional[str] = None) -> None:
    request.session["flash"] = {"success": success, "error": error}


def require_staff(user: dict = Depends(require_user)) -> dict:
    if user.get("role") not in ("admin", "super-admin"):
        raise PermissionDenied("Access denied", clear_cookie=False)
    return user


# Routes
@app.get("/")
def read_root():
    return {"message": "ATHEERA API"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["database_url"] = "✅ Set"
            response["database_name"] = database.db.name
            response["collections"] = database.db.list_collection_names()
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Auth models
class SignupInput(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    password: str = Field(..., min_length=6)
    gender: Literal["male", "female", "other", "prefer not to say"] = "prefer not to say"


class LoginInput(BaseModel):
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    gender: Optional[Literal["male", "female", "other", "prefer not to say"]] = None


class EmailCodeInput(BaseModel):
    email: EmailStr


class EmailVerifyInput(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1)


class EmailRegisterInput(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    gender: Literal["male", "female", "other", "prefer not to say"] = "prefer not to say"


class PhoneCodeInput(BaseModel):
    phone_number: str = Field(..., min_length=4)


class PhoneVerifyInput(BaseModel):
    phone_number: str = Field(..., min_length=4)
    code: str = Field(..., min_length=1)


class PhoneRegisterInput(BaseModel):
    name: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=4)
    email: Optional[EmailStr] = None
    gender: Literal["male", "female", "other", "prefer not to say"] = "prefer not to say"


# Auth
@app.post("/user/signup", status_code=status.HTTP_201_CREATED)
def signup(payload: SignupInput, response: Response, db: Database = Depends(get_db)):
    email = payload.email.lower() if payload.email else None
    ensure_unique(db, email, payload.phone_number)
    user = insert_user(
        db,
        name=payload.name,
        email=email,
        phone_number=payload.phone_number,
        password_hash=hash_password(payload.password),
        gender=payload.gender,
    )
    token = start_session(db, user, response)
    return {"success": True, "user": public_user(user), "token": token}


@app.post("/user/login")
def login(payload: LoginInput, response: Response, db: Database = Depends(get_db)):
    if payload.email:
        user = db["user"].find_one({"email": payload.email.lower()})
    elif payload.phone_number:
        user = db["user"].find_one({"phone_number": payload.phone_number})
    else:
        raise ValidationFailed("Email or phone number is required", ["email", "phone_number"])
    if not user or not verify_password(payload.password, user.get("password_hash")):
        raise NotAuthenticated("Invalid email or password")
    token = start_session(db, user, response)
    return {"success": True, "user": public_user(user), "token": token}


@app.post("/user/logout")
def logout(request: Request, response: Response, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    revoke_token(db, user["_id"], request.state.token)
    request.state.refreshed_token = None
    response.delete_cookie(TOKEN_COOKIE)
    return {"success": True, "message": "Logged out"}


@app.get("/user/check-auth")
def check_auth(user: Optional[dict] = Depends(optional_user)):
    return {"success": True, "logged_in": user is not None, "user": public_user(user) if user else None}


@app.put("/user/profile")
def update_profile(payload: ProfileUpdate, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    updates = payload.model_dump(exclude_none=True)
    if updates:
        updates["updated_at"] = database.utcnow()
        db["user"].update_one({"_id": user["_id"]}, {"$set": updates})
        user.update(updates)
    return {"success": True, "message": "Profile updated", "user": public_user(user)}


@app.post("/user/auth/email/send-code")
def send_email_code(payload: EmailCodeInput, action: Optional[str] = None, db: Database = Depends(get_db)):
    email = payload.email.lower()
    if action == "signup" and db["user"].find_one({"email": email}, {"_id": 1}):
        raise DuplicateField("email", "Email already registered")
    code = identity.store_code(db, identity.email_key(email))
    mailer.send_otp_email(email, code)
    return {"success": True, "message": "Verification code sent to email"}


@app.post("/user/auth/email/verify-code")
def verify_email_code(
    payload: EmailVerifyInput, response: Response, action: Optional[str] = None, db: Database = Depends(get_db)
):
    email = payload.email.lower()
    if not identity.consume_code(db, identity.email_key(email), payload.code):
        raise ValidationFailed("Invalid or expired verification code", ["code"])
    if action == "login":
        user = db["user"].find_one({"email": email})
        if not user:
            raise NotFound("Account not found with this email")
        token = start_session(db, user, response)
        return {"success": True, "message": "Login successful", "user": public_user(user), "token": token}
    identity.mark_verified(db, "email", email)
    return {"success": True, "message": "Email verified", "verified": True}


@app.post("/user/auth/email/register", status_code=status.HTTP_201_CREATED)
def register_with_email(payload: EmailRegisterInput, response: Response, db: Database = Depends(get_db)):
    email = payload.email.lower()
    ensure_unique(db, email)
    if not identity.consume_verified(db, "email", email):
        raise ValidationFailed("Email has not been verified", ["email"])
    user = insert_user(
        db,
        name=payload.name,
        email=email,
        password_hash=hash_password(payload.password),
        gender=payload.gender,
        email_verified=True,
    )
    token = start_session(db, user, response)
    return {"success": True, "message": "Registration successful", "user": public_user(user), "token": token}


@app.post("/user/auth/phone/send-code")
def send_phone_code(payload: PhoneCodeInput):
    result = identity.send_phone_code(payload.phone_number)
    return {"success": True, "message": "Verification code sent", "status": result}


@app.post("/user/auth/phone/verify-code")
def verify_phone_code(payload: PhoneVerifyInput, response: Response, db: Database = Depends(get_db)):
    if not identity.check_phone_code(payload.phone_number, payload.code):
        raise ValidationFailed("Invalid verification code", ["code"])
    user = db["user"].find_one({"phone_number": payload.phone_number})
    if user:
        token = start_session(db, user, response)
        return {"success": True, "is_new_user": False, "user": public_user(user), "token": token}
    identity.mark_verified(db, "phone", payload.phone_number)
    return {"success": True, "is_new_user": True, "message": "Phone number verified"}


@app.post("/user/auth/phone/register", status_code=status.HTTP_201_CREATED)
def register_with_phone(payload: PhoneRegisterInput, response: Response, db: Database = Depends(get_db)):
    email = payload.email.lower() if payload.email else None
    ensure_unique(db, email, payload.phone_number)
    if not identity.consume_verified(db, "phone", payload.phone_number):
        raise ValidationFailed("Phone number has not been verified", ["phone_number"])
    user = insert_user(
        db,
        name=payload.name,
        phone_number=payload.phone_number,
        email=email,
        gender=payload.gender,
        phone_verified=True,
    )
    token = start_session(db, user, response)
    return {"success": True, "message": "Registration successful", "user": public_user(user), "token": token}


@app.get("/user/auth/google")
def google_login(request: Request):
    state = secrets.token_urlsafe(16)
    request.session["oauth_state"] = state
    return {"success": True, "url": identity.google_authorization_url(state)}


@app.get("/user/auth/google/callback")
def google_callback(
    request: Request, response: Response, code: str, state: Optional[str] = None, db: Database = Depends(get_db)
):
    expected = request.session.pop("oauth_state", None)
    if not expected or state != expected:
        raise ValidationFailed("Invalid OAuth state", ["state"])
    profile = identity.google_profile(code)
    email = (profile.get("email") or "").lower()
    if not email:
        raise ValidationFailed("Google account has no email address", ["email"])

    user = db["user"].find_one({"google_id": profile.get("sub")}) or db["user"].find_one({"email": email})
    if user is None:
        user = insert_user(
            db,
            name=profile.get("name") or email.split("@")[0],
            email=email,
            google_id=profile.get("sub"),
            email_verified=True,
        )
    elif not user.get("google_id"):
        db["user"].update_one({"_id": user["_id"]}, {"$set": {"google_id": profile.get("sub"), "email_verified": True}})
    token = start_session(db, user, response)
    return {"success": True, "user": public_user(user), "token": token}


# Catalog
@app.get("/products/shop")
def shop(
    query: Optional[str] = None,
    category: Optional[str] = None,
    sub_category: Optional[str] = None,
    sub_sub_category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort_by: str = "createdAt",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = 1,
    db: Database = Depends(get_db),
):
    result = search_products(
        db, query, category, sub_category, sub_sub_category, min_price, max_price, sort_by, sort_order, page
    )
    return {"success": True, **result}


@app.get("/products/categories")
def product_categories():
    return {"success": True, "categories": TAXONOMY}


# Cart
class CartAddInput(BaseModel):
    product_id: str
    size: str = "None"
    quantity: int = Field(1, ge=1, le=10)
    direct: bool = False


class CartUpdateInput(BaseModel):
    line_id: Optional[str] = None
    product_id: Optional[str] = None
    size: Optional[str] = None
    quantity: int = Field(1, ge=1, le=10)


@app.get("/products/cart")
def get_cart(request: Request, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    flash = request.session.pop("flash", None) or {"success": None, "error": None}
    result = cart_engine.cart_summary(db, user)
    return {"success": True, **result, "flash": flash}


@app.post("/products/cart/add")
def add_cart(
    payload: CartAddInput, request: Request, user: dict = Depends(require_user), db: Database = Depends(get_db)
):
    try:
        result = cart_engine.add_to_cart(db, user, payload.product_id, payload.size, payload.quantity)
    except HTTPException as exc:
        set_flash(request, error=exc.detail)
        raise
    product = result["product"]
    message = "Cart updated successfully" if result["merged"] else "Added to cart successfully"
    set_flash(request, success=message)
    if payload.direct:
        target = product.get("sub_sub_category") or product.get("sub_category") or product.get("category")
        continue_to = f"/products/shop?query={target}"
    else:
        continue_to = f"/products/{product['_id']}"
    return {"success": True, "message": message, "line": result["line"], "continue_to": continue_to}


@app.post("/products/cart/update")
def update_cart(
    payload: CartUpdateInput, request: Request, user: dict = Depends(require_user), db: Database = Depends(get_db)
):
    target = payload.line_id or payload.product_id
    if not target:
        raise ValidationFailed("line_id or product_id is required", ["line_id", "product_id"])
    try:
        line = cart_engine.update_cart_line(db, user, target, payload.size, payload.quantity)
    except HTTPException as exc:
        set_flash(request, error=exc.detail)
        raise
    set_flash(request, success="Cart updated successfully")
    return {"success": True, "message": "Cart updated successfully", "line": line}


@app.post("/products/cart/remove/{line_or_product_id}")
def remove_cart(
    line_or_product_id: str, request: Request, user: dict = Depends(require_user), db: Database = Depends(get_db)
):
    try:
        line = cart_engine.remove_cart_line(db, user, line_or_product_id)
    except HTTPException as exc:
        set_flash(request, error=exc.detail)
        raise
    set_flash(request, success="Product removed from cart")
    return {"success": True, "message": "Product removed from cart", "line": line}


class EnquiryMailInput(BaseModel):
    size: Optional[str] = None
    phone_number: Optional[str] = None


@app.get("/products/{product_id}")
def get_product(product_id: str, user: Optional[dict] = Depends(optional_user), db: Database = Depends(get_db)):
    product = db["product"].find_one({"_id": to_object_id(product_id)})
    if not product:
        raise NotFound("Product not found")
    cart_line = None
    if user:
        line = next((item for item in user.get("cart", []) if item.get("product") == product["_id"]), None)
        cart_line = serialize_doc(line) if line else None
    return {
        "success": True,
        "product": product_to_client(product),
        "related": related_products(db, product),
        "cart_line": cart_line,
        "in_wishlist": relations.in_wishlist(db, user, product_id),
    }


@app.post("/products/{product_id}/enquiry-mail")
def product_enquiry_mail(
    product_id: str, payload: EnquiryMailInput, user: dict = Depends(require_user), db: Database = Depends(get_db)
):
    product = db["product"].find_one({"_id": to_object_id(product_id)})
    if not product:
        raise NotFound("Product not found")
    mailer.send_enquiry_email(user, product, payload.size, payload.phone_number)
    return {"success": True, "message": "Your enquiry has been sent successfully!"}


# Account
class PhoneUpdateInput(BaseModel):
    phone_number: str = Field(..., min_length=4)


@app.get("/account")
def account(user: dict = Depends(require_user)):
    return {"success": True, "user": public_user(user)}


@app.get("/account/orders")
def account_orders(user: dict = Depends(require_user)):
    return {"success": True, "orders": serialize_doc(user.get("orders", []))}


@app.get("/account/orders/{order_id}")
def account_order(order_id: str, user: dict = Depends(require_user)):
    return {"success": True, "order": serialize_doc(accounts.find_order(user, order_id))}


@app.get("/account/cart")
def account_cart(user: dict = Depends(require_user)):
    return {"success": True, "cart": serialize_doc(user.get("cart", []))}


@app.get("/account/recently-viewed")
def recently_viewed(user: dict = Depends(require_user), db: Database = Depends(get_db)):
    return {"success": True, "recently_viewed": accounts.recently_viewed(db, user)}


@app.post("/account/recently-viewed/{product_id}")
def add_recently_viewed(product_id: str, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    accounts.record_view(db, user, product_id)
    return {"success": True, "message": "Product added to recently viewed"}


@app.delete("/account/recently-viewed")
def clear_recently_viewed(user: dict = Depends(require_user), db: Database = Depends(get_db)):
    accounts.clear_recently_viewed(db, user)
    return {"success": True, "message": "Recently viewed products cleared"}


@app.get("/account/addresses")
def list_addresses(user: dict = Depends(require_user)):
    return {"success": True, "addresses": serialize_doc(user.get("addresses", []))}


@app.post("/account/addresses", status_code=status.HTTP_201_CREATED)
def add_address(payload: Address, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    addresses = accounts.add_address(db, user, payload)
    return {"success": True, "message": "Address added successfully", "addresses": addresses}


@app.put("/account/addresses/{address_id}")
def update_address(
    address_id: str, payload: Address, user: dict = Depends(require_user), db: Database = Depends(get_db)
):
    addresses = accounts.update_address(db, user, address_id, payload)
    return {"success": True, "message": "Address updated successfully", "addresses": addresses}


@app.delete("/account/addresses/{address_id}")
def delete_address(address_id: str, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    addresses = accounts.delete_address(db, user, address_id)
    return {"success": True, "message": "Address deleted successfully", "addresses": addresses}


@app.put("/account/addresses/{address_id}/default")
def default_address(address_id: str, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    addresses = accounts.set_default_address(db, user, address_id)
    return {"success": True, "message": "Default address updated successfully", "addresses": addresses}


@app.put("/account/phone")
def update_phone(payload: PhoneUpdateInput, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    user = accounts.update_phone(db, user, payload.phone_number)
    return {"success": True, "message": "Phone number updated successfully", "user": public_user(user)}


# Wishlist
@app.get("/wishlist")
def get_wishlist(user: dict = Depends(require_user), db: Database = Depends(get_db)):
    return {"success": True, "wishlist": relations.read_wishlist(db, user)}


@app.post("/wishlist/add/{product_id}")
def add_wishlist(product_id: str, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    added = relations.add_to_wishlist(db, user, product_id)
    message = "Product added to wishlist" if added else "Product already in wishlist"
    return {"success": True, "message": message, "added": added}


@app.delete("/wishlist/remove/{product_id}")
def remove_wishlist(product_id: str, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    relations.remove_from_wishlist(db, user, product_id)
    return {"success": True, "message": "Product removed from wishlist"}


@app.get("/wishlist/check/{product_id}")
def check_wishlist(product_id: str, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    return {"success": True, "in_wishlist": relations.in_wishlist(db, user, product_id)}


# Enquiries
class EnquiryItemInput(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class EnquiryInput(BaseModel):
    email: EmailStr
    phone_number: str = Field(..., min_length=4)
    verification_code: str = Field(..., min_length=1)
    products: List[EnquiryItemInput] = []
    from_cart: bool = False


class EnquiryStatusInput(BaseModel):
    status: str
    notes: Optional[str] = None


@app.post("/enquiries", status_code=status.HTTP_201_CREATED)
def create_enquiry(payload: EnquiryInput, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    if payload.from_cart:
        items = [{"product_id": str(line["product"]), "quantity": line["quantity"]} for line in user.get("cart", [])]
    else:
        items = [item.model_dump() for item in payload.products]
    enquiry = relations.create_enquiry(db, user, payload.email, payload.phone_number, items)
    return {"success": True, "message": "Enquiry submitted successfully", "enquiry": serialize_doc(enquiry)}


@app.get("/enquiries/user")
def user_enquiries(user: dict = Depends(require_user), db: Database = Depends(get_db)):
    return {"success": True, "enquiries": relations.read_enquiries(db, {"user": user["_id"]})}


@app.get("/enquiries/all")
def all_enquiries(page: int = 1, limit: int = 10, user: dict = Depends(require_staff), db: Database = Depends(get_db)):
    return {"success": True, **relations.paginate_enquiries(db, {}, page, limit)}


@app.patch("/enquiries/{enquiry_id}/status")
def enquiry_status(
    enquiry_id: str, payload: EnquiryStatusInput, user: dict = Depends(require_staff), db: Database = Depends(get_db)
):
    enquiry = relations.update_enquiry_status(db, enquiry_id, payload.status, payload.notes)
    return {"success": True, "message": "Enquiry status updated", "enquiry": serialize_doc(enquiry)}


@app.delete("/enquiries/{enquiry_id}")
def remove_enquiry(enquiry_id: str, user: dict = Depends(require_staff), db: Database = Depends(get_db)):
    relations.delete_enquiry(db, enquiry_id)
    return {"success": True, "message": "Enquiry deleted successfully"}


# Admin
class ProductUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    general_details: Optional[str] = None
    category: Optional[str] = None
    sub_category: Optional[str] = None
    sub_sub_category: Optional[str] = None
    images: Optional[List[ProductImage]] = None
    variants: Optional[List[Variant]] = None


@app.get("/admin")
def admin_dashboard(query: Optional[str] = None, page: int = 1, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return {"success": True, **dashboard.admin_search(db, query, page)}


@app.post("/admin/products", status_code=status.HTTP_201_CREATED)
def admin_create_product(data: ProductSchema, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    product = dashboard.create_product(db, data)
    return {"success": True, "message": "Product created successfully", "product": product_to_client(product)}


@app.get("/admin/products/{product_id}")
def admin_product(product_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return {"success": True, "product": product_to_client(dashboard.get_product(db, product_id))}


@app.put("/admin/products/{product_id}")
def admin_edit_product(
    product_id: str, data: ProductUpdate, admin: dict = Depends(require_admin), db: Database = Depends(get_db)
):
    product = dashboard.edit_product(db, product_id, data.model_dump(exclude_unset=True, exclude={"images"}), data.images)
    return {"success": True, "message": "Product updated successfully", "product": product_to_client(product)}


@app.delete("/admin/products/{product_id}")
def admin_delete_product(product_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    removed = dashboard.delete_product(db, product_id)
    return {"success": True, "message": "Product and associated enquiries deleted successfully", "enquiries_removed": removed}


@app.get("/admin/categories")
def admin_categories(admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return {"success": True, **dashboard.categories_in_use(db)}


@app.get("/admin/make-admin")
def make_admin(passcode: Optional[str] = None, user: dict = Depends(require_user), db: Database = Depends(get_db)):
    user = dashboard.make_admin(db, user, passcode)
    return {"success": True, "message": "🎉 You are now an admin!", "user": public_user(user)}


# Super admin
class RoleInput(BaseModel):
    role: str


@app.get("/super-admin")
def super_admin_dashboard(
    query: Optional[str] = None,
    user_page: int = 1,
    admin_page: int = 1,
    product_page: int = 1,
    enquiry_page: int = 1,
    super_admin: dict = Depends(require_super_admin),
    db: Database = Depends(get_db),
):
    data = dashboard.super_admin_dashboard(db, query, user_page, admin_page, product_page, enquiry_page)
    return {"success": True, **data}


@app.get("/super-admin/users")
def super_admin_users(
    query: Optional[str] = None,
    role: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    super_admin: dict = Depends(require_super_admin),
    db: Database = Depends(get_db),
):
    return {"success": True, **dashboard.list_users(db, query, role, page, limit)}


@app.put("/super-admin/users/{user_id}/role")
def super_admin_role(
    user_id: str, payload: RoleInput, super_admin: dict = Depends(require_super_admin), db: Database = Depends(get_db)
):
    user = dashboard.update_user_role(db, user_id, payload.role)
    return {"success": True, "message": f"User role updated to {payload.role}", "user": public_user(user)}


@app.delete("/super-admin/users/{user_id}")
def super_admin_delete_user(user_id: str, super_admin: dict = Depends(require_super_admin), db: Database = Depends(get_db)):
    dashboard.delete_user(db, user_id)
    return {"success": True, "message": "User deleted successfully"}


@app.get("/super-admin/products")
def super_admin_products(
    query: Optional[str] = None, page: int = 1, super_admin: dict = Depends(require_super_admin), db: Database = Depends(get_db)
):
    return {"success": True, **dashboard.admin_search(db, query, page)}


@app.post("/super-admin/products", status_code=status.HTTP_201_CREATED)
def super_admin_create_product(data: ProductSchema, super_admin: dict = Depends(require_super_admin), db: Database = Depends(get_db)):
    product = dashboard.create_product(db, data)
    return {"success": True, "message": "Product created successfully", "product": product_to_client(product)}


@app.get("/super-admin/products/{product_id}")
def super_admin_product(product_id: str, super_admin: dict = Depends(require_super_admin), db: Database = Depends(get_db)):
    return {"success": True, "product": product_to_client(dashboard.get_product(db, product_id))}


@app.put("/super-admin/products/{product_id}")
def super_admin_edit_product(
    product_id: str, data: ProductUpdate, super_admin: dict = Depends(require_super_admin), db: Database = Depends(get_db)
):
    product = dashboard.edit_product(db, product_id, data.model_dump(exclude_unset=True, exclude={"images"}), data.images)
    return {"success": True, "message": "Product updated successfully", "product": product_to_client(product)}


@app.delete("/super-admin/products/{product_id}")
def super_admin_delete_product(product_id: str, super_admin: dict = Depends(require_super_admin), db: Database = Depends(get_db)):
    removed = dashboard.delete_product(db, product_id)
    return {"success": True, "message": "Product and associated enquiries deleted successfully", "enquiries_removed": removed}


@app.get("/super-admin/categories")
def super_admin_categories(super_admin: dict = Depends(require_super_admin), db: Database = Depends(get_db)):
    return {"success": True, **dashboard.categories_in_use(db)}


@app.get("/super-admin/enquiries")
def super_admin_enquiries(
    page: int = 1, limit: int = 10, super_admin: dict = Depends(require_super_admin), db: Database = Depends(get_db)
):
    return {"success": True, **relations.paginate_enquiries(db, {}, page, limit)}


@app.patch("/super-admin/enquiries/{enquiry_id}/status")
def super_admin_enquiry_status(
    enquiry_id: str, payload: EnquiryStatusInput, super_admin: dict = Depends(require_super_admin), db: Database = Depends(get_db)
):
    enquiry = relations.update_enquiry_status(db, enquiry_id, payload.status, payload.notes)
    return {"success": True, "message": "Enquiry status updated", "enquiry": serialize_doc(enquiry)}


@app.delete("/super-admin/enquiries/{enquiry_id}")
def super_admin_delete_enquiry(enquiry_id: str, super_admin: dict = Depends(require_super_admin), db: Database = Depends(get_db)):
    relations.delete_enquiry(db, enquiry_id)
    return {"success": True, "message": "Enquiry deleted successfully"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
