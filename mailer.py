"""
Transactional email through Resend.
"""

import html
import logging
import time
from datetime import datetime
from typing import Dict, Optional

import requests
import resend
from resend.exceptions import ResendError

from catalog import effective_price, resolve_variant
from config import EMAIL_FROM, EMAIL_MAX_RETRIES, EMAIL_RETRY_BACKOFF, OTP_EXPIRY_MINUTES, RESEND_API_KEY, STORE_EMAIL
from errors import NotFound, UpstreamError

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    pass


def send_email(payload: Dict[str, object]) -> dict:
    resend.api_key = RESEND_API_KEY
    response = resend.Emails.send(payload)
    if not isinstance(response, dict) or not response.get("id"):
        raise EmailDeliveryError(f"Unexpected Resend response: {response!r}")
    return response


def send_with_retry(payload: Dict[str, object], max_retries: int = EMAIL_MAX_RETRIES) -> dict:
    """Send `payload`, retrying with exponential backoff; raises UpstreamError when every attempt fails."""
    last_error: Optional[Exception] = None
    for attempt in range(max_retries):
        try:
            return send_email(payload)
        except (requests.RequestException, ResendError, EmailDeliveryError) as exc:
            last_error = exc
            logger.warning("Email attempt %d/%d to %s failed: %s", attempt + 1, max_retries, payload.get("to"), exc)
            if attempt < max_retries - 1:
                time.sleep(EMAIL_RETRY_BACKOFF * 2 ** attempt)
    logger.error("Giving up on email to %s after %d attempts: %s", payload.get("to"), max_retries, last_error)
    raise UpstreamError()


def send_otp_email(recipient: str, code: str) -> dict:
    body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
      <h2 style="color: #444c34;">Your verification code</h2>
      <p style="font-size: 28px; letter-spacing: 6px; font-weight: bold;">{code}</p>
      <p>This code expires in {OTP_EXPIRY_MINUTES} minutes. If you did not request it, ignore this email.</p>
    </div>
    """
    payload: Dict[str, object] = {
        "from": EMAIL_FROM,
        "to": [recipient],
        "subject": "Your ATHEERA verification code",
        "html": body,
        "text": f"Your ATHEERA verification code is {code}. It expires in {OTP_EXPIRY_MINUTES} minutes.",
    }
    return send_with_retry(payload)


def _row(label: str, value) -> str:
    return (
        f'<tr><td style="padding: 8px; border: 1px solid #e0e0e0; background-color: #f9f9f9;">'
        f"<strong>{label}:</strong></td>"
        f'<td style="padding: 8px; border: 1px solid #e0e0e0;">{html.escape(str(value))}</td></tr>'
    )


def build_enquiry_email(user: dict, product: dict, size: Optional[str], phone_number: Optional[str]) -> Dict[str, object]:
    variant = resolve_variant(product, size)
    if variant is None:
        raise NotFound("Variant not found")
    price = variant.get("price", 0)
    discount = variant.get("discount") or 0
    rows = [
        _row("Name", user.get("name") or "N/A"),
        _row("Email", user.get("email") or "N/A"),
        _row("Phone", phone_number or user.get("phone_number") or "N/A"),
    ]
    product_rows = [
        _row("SKU/Model No", variant.get("modelno")),
        _row("Title", product.get("title")),
        _row(
            "Category",
            f"{product.get('category')} > {product.get('sub_category')} > {product.get('sub_sub_category')}",
        ),
        _row("Size", variant.get("size")),
        _row("Original Price", f"₹{price}"),
    ]
    if discount:
        product_rows.append(_row("Discount", f"₹{price - discount}"))
    product_rows.append(_row("Final Price", f"₹{effective_price(variant)}"))

    sent_at = datetime.now().strftime("%A, %B %d, %Y %I:%M %p")
    body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
      <h1 style="color: #444c34;">Product Enquiry Details</h1>
      <h2 style="color: #34455d;">Customer Information</h2>
      <table style="width: 100%; border-collapse: collapse;">{''.join(rows)}</table>
      <h2 style="color: #34455d;">Product Information</h2>
      <table style="width: 100%; border-collapse: collapse;">{''.join(product_rows)}</table>
      <p style="color: #666;"><strong>Enquiry Date:</strong> {sent_at}</p>
    </div>
    """
    return {
        "from": EMAIL_FROM,
        "to": [STORE_EMAIL],
        "subject": f"Product Enquiry - {product.get('title')} (SKU: {variant.get('modelno')})",
        "html": body,
    }


def send_enquiry_email(user: dict, product: dict, size: Optional[str], phone_number: Optional[str]) -> dict:
    return send_with_retry(build_enquiry_email(user, product, size, phone_number))
