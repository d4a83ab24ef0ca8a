"""
Line-item pricing shared by quotations and purchase orders.

Per line:
    subtotal        = quantity * unit_price
    discount_amount = subtotal * discount%
    tax_amount      = (subtotal - discount_amount) * tax_rate%
    total_price     = subtotal - discount_amount + tax_amount

Document totals sum the lines; a header-level discount is taken off the
grand total. SUBTITLE lines are headings: quantity and price are forced to 0.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from .models import money, to_decimal

HUNDRED = Decimal("100")


def price_line(line, item) -> None:
    """Copy `item` (LineItemIn) onto model `line` and compute its amounts."""
    is_subtitle = item.is_subtitle or item.category == "SUBTITLE"

    line.description = item.description
    line.category = "SUBTITLE" if is_subtitle else item.category
    line.unit = item.unit
    line.notes = item.notes

    if is_subtitle:
        line.quantity = Decimal("0")
        line.unit_price = Decimal("0")
        line.discount = Decimal("0")
        line.tax_rate = Decimal("0")
    else:
        line.quantity = to_decimal(item.quantity)
        line.unit_price = to_decimal(item.unit_price)
        line.discount = to_decimal(item.discount)
        line.tax_rate = to_decimal(item.tax_rate)

    subtotal = money(line.quantity * line.unit_price)
    discount_amount = money(subtotal * line.discount / HUNDRED)
    tax_amount = money((subtotal - discount_amount) * line.tax_rate / HUNDRED)

    line.subtotal = subtotal
    line.discount_amount = discount_amount
    line.tax_amount = tax_amount
    line.total_price = money(subtotal - discount_amount + tax_amount)


def build_lines(line_cls, items: Iterable) -> list:
    """Model instances for `items`, ordered as given."""
    lines = []
    for index, item in enumerate(items):
        line = line_cls(order=index)
        price_line(line, item)
        lines.append(line)
    return lines


def apply_document_totals(document, lines: list, header_discount=None) -> None:
    """Set subtotal / tax_amount / discount_amount / total_amount on `document`."""
    subtotal = sum((to_decimal(l.subtotal) - to_decimal(l.discount_amount) for l in lines), Decimal("0"))
    tax = sum((to_decimal(l.tax_amount) for l in lines), Decimal("0"))
    discount = to_decimal(header_discount)

    document.subtotal = money(subtotal)
    document.tax_amount = money(tax)
    document.discount_amount = money(discount)
    document.total_amount = money(subtotal + tax - discount)
