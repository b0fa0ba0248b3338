"""
UPI payment-initiation links and their QR codes.

Link format (NPCI deep link):
    upi://pay?pa=<merchant id>&pn=<merchant name>&am=<amount>&tn=<note>&tr=<reference>

Both outputs are pure functions of their inputs, so a retried payment
session renders the same link and QR image as the first attempt.
"""

import secrets
from decimal import Decimal
from urllib.parse import urlencode

import segno
from flask import current_app

QR_SCALE = 6
QR_BORDER = 2


def generate_payment_reference() -> str:
    """Fresh external reference for a payment session (``tr=``)."""
    return f"TXN-{secrets.token_hex(8).upper()}"


def format_amount(amount) -> str:
    return f"{Decimal(str(amount or 0)):.2f}"


def build_upi_link(
    amount,
    note: str,
    reference: str,
    merchant_id: str | None = None,
    merchant_name: str | None = None,
) -> str:
    """Build the upi://pay deep link for one payment session."""
    params = {
        "pa": merchant_id or current_app.config["UPI_MERCHANT_ID"],
        "pn": merchant_name or current_app.config["UPI_MERCHANT_NAME"],
        "am": format_amount(amount),
        "tn": note,
        "tr": reference,
    }
    return f"upi://pay?{urlencode(params)}"


def build_qr_data_uri(link: str) -> str:
    """PNG QR code of ``link`` as a data: URI."""
    qr = segno.make_qr(link, error="m")
    return qr.png_data_uri(scale=QR_SCALE, border=QR_BORDER, dark="#000000", light="#ffffff")
