# Overview: Service-layer helpers for allocating order and invoice numbers.

"""
Identifier Service - order and invoice numbers

FORMAT: <PREFIX>-<epoch millis>-<6 uppercase alphanumerics>
    ORD-1767225600000-K3Z9QA      catalog order
    SPO-1767225600000-0B2XRT      sponsorship order
    INV-1767225600000-M1C4PE      invoice
    SPO-INV-1767225600000-77HJQW  sponsorship invoice

Numbers are unique by construction with overwhelming probability; the
unique constraints on orders.order_number and order_invoices.invoice_number
are the backstop.
"""

import secrets
import string
import time

ORDER_PREFIX = "ORD"
SPONSORSHIP_ORDER_PREFIX = "SPO"
INVOICE_PREFIX = "INV"
SPONSORSHIP_INVOICE_PREFIX = "SPO-INV"

_ALPHABET = string.ascii_uppercase + string.digits


def _suffix(length: int = 6) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def generate_number(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{_suffix()}"


def next_order_number(*, sponsorship: bool = False) -> str:
    return generate_number(SPONSORSHIP_ORDER_PREFIX if sponsorship else ORDER_PREFIX)


def next_invoice_number(*, sponsorship: bool = False) -> str:
    return generate_number(SPONSORSHIP_INVOICE_PREFIX if sponsorship else INVOICE_PREFIX)
