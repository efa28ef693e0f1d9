"""Transbank commission estimate for a completed sale."""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

# Debit sales (Redcompra) are reported with payment type VD
DEBIT_PAYMENT_TYPE = "VD"
# Below this fee, IVA does not apply to boleta-issuing merchants
IVA_EXEMPT_BELOW = Decimal(180)


@dataclass(frozen=True)
class Fees:
    subtotal: int
    iva: int
    total: int


def _round(value: Decimal) -> Decimal:
    return value.quantize(Decimal(1), rounding=ROUND_HALF_UP)


def calc_fees(
    amount,
    payment_type_code: str,
    *,
    credit_fee_percent: Decimal,
    debit_fee_percent: Decimal,
    iva_factor: Decimal,
    no_iva_below_180: bool = False,
) -> Fees:
    """Commission (CLP) Transbank charges for a sale of ``amount``.

    ``no_iva_below_180`` skips IVA when the commission is under 180 CLP,
    which applies to merchants issuing boletas instead of facturas.
    """
    amount = Decimal(str(amount))
    is_debit = (payment_type_code or "").upper() == DEBIT_PAYMENT_TYPE
    percent = Decimal(str(debit_fee_percent if is_debit else credit_fee_percent))

    subtotal = _round(amount * percent / 100)
    iva = Decimal(0)
    if not no_iva_below_180 or subtotal >= IVA_EXEMPT_BELOW:
        iva = _round(subtotal * Decimal(str(iva_factor)))
    return Fees(subtotal=int(subtotal), iva=int(iva), total=int(subtotal + iva))
