"""
Database Schemas

Define your MongoDB collection schemas here using Pydantic models.
Each Pydantic model represents a collection in your database.
Model name lowercased is the collection name.
"""

from typing import Dict, List, Literal, Optional

from pydantic import Base64Bytes, BaseModel, EmailStr, Field, field_validator, model_validator

ENQUIRY_STATUSES = ("pending", "contacted", "completed", "cancelled")

# category -> sub-category -> sub-sub-categories
TAXONOMY: Dict[str, Dict[str, List[str]]] = {
    "jewellery": {
        "diamond": ["necklace", "pendant", "earring", "ring", "bracelet"],
        "gold": ["necklace", "pendant", "earring", "ring", "bracelet"],
    },
}

MIN_IMAGES = 3
MAX_IMAGES = 7


class Address(BaseModel):
    name: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    is_default: bool = False


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: Optional[EmailStr] = Field(None, description="Email address, unique when present")
    phone_number: Optional[str] = Field(None, description="Phone number, unique when present")
    password_hash: Optional[str] = Field(None, description="BCrypt hashed password, credential login only")
    google_id: Optional[str] = None
    role: Literal["user", "admin", "super-admin"] = "user"
    gender: Literal["male", "female", "other", "prefer not to say"] = "prefer not to say"
    email_verified: bool = False
    phone_verified: bool = False
    is_active: bool = True
    tokens: List[dict] = Field(default_factory=list, description="[{token, created_at}], at most 5")
    cart: List[dict] = Field(default_factory=list, description="[{_id, product, variant_id, quantity, size, added_at}]")
    cart_version: int = 0
    addresses: List[dict] = Field(default_factory=list)
    orders: List[dict] = Field(default_factory=list)
    recently_viewed: List[dict] = Field(default_factory=list, description="[{product, viewed_at}], at most 20")

    @model_validator(mode="after")
    def _needs_identity(self):
        if not self.email and not self.phone_number:
            raise ValueError("Either email or phone number is required")
        return self

    def to_document(self) -> dict:
        # unset identities are omitted so sparse unique indexes skip them
        return self.model_dump(exclude_none=True)


class Variant(BaseModel):
    modelno: str = Field(..., min_length=1, description="Model number / SKU")
    size: Literal["None", "XS", "S", "M", "L", "XL", "XXL"] = "None"
    price: float = Field(..., ge=0)
    discount: float = Field(0, ge=0, description="Absolute discounted price, not a percentage")
    quantity: int = Field(..., ge=0)
    quality: str = ""

    @model_validator(mode="after")
    def _discount_within_price(self):
        if self.discount > self.price:
            raise ValueError("Discount price cannot be greater than regular price")
        return self


class ProductImage(BaseModel):
    url: Optional[str] = None
    public_id: Optional[str] = None
    data: Optional[Base64Bytes] = Field(None, description="Base64 encoded image payload")
    content_type: str = "image/jpeg"

    @model_validator(mode="after")
    def _one_source(self):
        if not self.data and not self.url:
            raise ValueError("Image needs either a url or base64 data")
        return self


class ProductDetails(BaseModel):
    """Everything about a product except its images."""

    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    general_details: str = Field("", max_length=2000)
    category: str
    sub_category: str
    sub_sub_category: str
    variants: List[Variant]

    @field_validator("variants")
    @classmethod
    def _has_variants(cls, variants):
        if not variants:
            raise ValueError("At least one product variant is required")
        return variants

    @model_validator(mode="after")
    def _taxonomy(self):
        sub_categories = TAXONOMY.get(self.category)
        if sub_categories is None:
            raise ValueError(f"'{self.category}' is not a supported category")
        if self.sub_category not in sub_categories:
            raise ValueError(
                f"Invalid sub-category '{self.sub_category}' for the selected category '{self.category}'"
            )
        if self.sub_sub_category not in sub_categories[self.sub_category]:
            raise ValueError(
                f"Invalid sub-sub-category '{self.sub_sub_category}' for the selected sub-category '{self.sub_category}'"
            )
        return self


class Product(ProductDetails):
    images: List[ProductImage]

    @field_validator("images")
    @classmethod
    def _image_count(cls, images):
        if len(images) < MIN_IMAGES or len(images) > MAX_IMAGES:
            raise ValueError(f"You can upload from {MIN_IMAGES} to {MAX_IMAGES} images")
        return images
