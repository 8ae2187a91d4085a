import math
from dataclasses import dataclass, asdict
from typing import Iterable, Optional

CGST_SGST = "CGST_SGST"
IGST = "IGST"
TAX_TYPES = (CGST_SGST, IGST)

DEFAULT_CGST_RATE = 9.0
DEFAULT_SGST_RATE = 9.0
DEFAULT_IGST_RATE = 18.0


@dataclass
class LineItem:
    quantity: float = 1
    rate: float = 0.0
    taxable_value: float = 0.0
    product_id: Optional[str] = None
    name: Optional[str] = None
    hsn_sac_code: Optional[str] = None

    def recompute(self):
        self.taxable_value = line_taxable_value(self.quantity, self.rate)


@dataclass
class TaxConfig:
    tax_type: Optional[str] = IGST
    cgst_rate: float = 0.0
    sgst_rate: float = 0.0
    igst_rate: float = 0.0
    packing_cartage_charges: float = 0.0


@dataclass(frozen=True)
class Totals:
    total_amount_before_tax: float = 0.0
    cgst_amount: float = 0.0
    sgst_amount: float = 0.0
    igst_amount: float = 0.0
    total_amount_after_tax: int = 0

    def as_dict(self):
        return asdict(self)


def money(val):
    """Round to 2 decimals consistently for money values."""
    return round(float(val), 2)


def round_rupee(val):
    """Round half-up to a whole rupee, as printed on the grand total line."""
    val = float(val)
    if not math.isfinite(val):
        return val
    return int(math.floor(val + 0.5))


def _num(val):
    # None, blanks and NaN count as zero
    if val is None or val == "":
        return 0.0
    try:
        f = float(val)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(f) else f


def line_taxable_value(quantity, rate):
    return money(_num(quantity) * _num(rate))


def calculate_totals(items: Iterable[LineItem], config: TaxConfig) -> Totals:
    """
    Compute the invoice totals for a list of line items.
    If tax_type == CGST_SGST → CGST + SGST
    Else → IGST (also the default when no tax type is set)
    Only the active regime's rates are applied.
    """
    goods_total = sum(_num(item.taxable_value) for item in items)
    packing = _num(config.packing_cartage_charges)
    taxable = goods_total + packing

    cgst = sgst = igst = 0.0
    if (config.tax_type or IGST) == CGST_SGST:
        cgst = money(taxable * _num(config.cgst_rate) / 100)
        sgst = money(taxable * _num(config.sgst_rate) / 100)
    else:
        igst = money(taxable * _num(config.igst_rate) / 100)

    grand_total = round_rupee(money(taxable + cgst + sgst + igst))
    return Totals(
        total_amount_before_tax=money(taxable),
        cgst_amount=cgst,
        sgst_amount=sgst,
        igst_amount=igst,
        total_amount_after_tax=grand_total,
    )


def suggest_tax_config(client_state_code, company_state_code):
    """
    Suggest the tax regime for a buyer.
    If the buyer's state code matches the seller's → CGST + SGST at 9% each
    Else → IGST at 18%
    Returns None when either state code is missing.
    """
    if not client_state_code or not company_state_code:
        return None
    if str(client_state_code).strip() == str(company_state_code).strip():
        return TaxConfig(CGST_SGST, DEFAULT_CGST_RATE, DEFAULT_SGST_RATE, 0.0)
    return TaxConfig(IGST, 0.0, 0.0, DEFAULT_IGST_RATE)
