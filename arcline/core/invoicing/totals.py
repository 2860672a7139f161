"""Invoice totals from line items.

Every path that shows or stores a total (composer preview, create, update)
goes through ``totals_from_amounts`` so the numbers cannot drift apart.
"""

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from arcline.core.invoicing.schemas import InvoiceLineInput, InvoiceTotals

_HUNDRED = Decimal("100")


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_cents(dollars: Decimal) -> int:
    return round_half_up(Decimal(dollars) * _HUNDRED)


def line_amount_cents(line: InvoiceLineInput) -> int:
    return round_half_up(Decimal(line.quantity) * Decimal(line.unit_cost) * _HUNDRED)


def calculate_totals(lines: Sequence[InvoiceLineInput], tax_rate: Decimal = Decimal("0")) -> InvoiceTotals:
    amounts = [line_amount_cents(line) for line in lines]
    return totals_from_amounts(amounts, [line.taxable for line in lines], tax_rate)


def totals_from_amounts(
    amounts: Sequence[int], taxable: Sequence[bool], tax_rate: Decimal = Decimal("0")
) -> InvoiceTotals:
    """Totals for line amounts that are already in cents, e.g. stored invoice lines."""
    subtotal = sum(amounts)
    taxable_base = sum(amount for amount, is_taxable in zip(amounts, taxable) if is_taxable)

    rate = Decimal(tax_rate)
    tax = round_half_up(Decimal(taxable_base) * rate / _HUNDRED)
    total = subtotal + tax

    return InvoiceTotals(
        line_amounts_cents=list(amounts),
        subtotal_cents=subtotal,
        tax_cents=tax,
        total_cents=total,
        balance_due_cents=total,
        tax_rate=rate,
    )
