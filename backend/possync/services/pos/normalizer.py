"""Normalization of upstream POS report responses.

The Tuu API answers in several shapes depending on endpoint and deployment.
Each response is classified into exactly one of the known shapes below and
then flattened into a list of BranchBatch objects:

1. ``data`` is a list of branch objects (branch-report endpoint)
2. ``data`` is a single branch object with a ``sales`` list
3. ``data`` has a ``transactions`` list (report endpoint)

Anything else is an UnrecognizedShape, which normalizes to an empty list.
"""

import logging
import random
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

RawSale = Dict[str, Any]

# Keys that may carry a native upstream sale id, in priority order
SALE_ID_KEYS = ("id", "transactionId", "saleId", "tuuSaleId")

UNKNOWN = "unknown"


@dataclass(frozen=True)
class BranchLocation:
    id: Optional[str] = None
    address: Optional[str] = None


@dataclass
class BranchBatch:
    """Sales of one branch (merchant location) in canonical shape."""

    merchant: Optional[str]
    location: BranchLocation
    sales: List[RawSale] = field(default_factory=list)


# ============== Response shapes ==============

@dataclass(frozen=True)
class BranchListShape:
    branches: List[Dict[str, Any]]


@dataclass(frozen=True)
class SingleBranchShape:
    branch: Dict[str, Any]


@dataclass(frozen=True)
class ReportTransactionsShape:
    commerce: Dict[str, Any]
    transactions: List[Dict[str, Any]]


@dataclass(frozen=True)
class UnrecognizedShape:
    reason: str


ResponseShape = Union[BranchListShape, SingleBranchShape, ReportTransactionsShape, UnrecognizedShape]


def classify_response(raw: Any) -> ResponseShape:
    """Classify a raw upstream response into one of the known shapes."""
    if not isinstance(raw, dict):
        return UnrecognizedShape(reason=f"response is {type(raw).__name__}, not an object")

    data = raw.get("data")
    if data is None:
        data = raw.get("Data")

    if isinstance(data, list):
        return BranchListShape(branches=[b for b in data if isinstance(b, dict)])

    if isinstance(data, dict):
        if isinstance(data.get("sales"), list):
            return SingleBranchShape(branch=data)
        if isinstance(data.get("transactions"), list):
            commerce = data.get("commerce")
            return ReportTransactionsShape(
                commerce=commerce if isinstance(commerce, dict) else {},
                transactions=[t for t in data["transactions"] if isinstance(t, dict)],
            )
        return UnrecognizedShape(reason=f"data object has keys {sorted(data.keys())}")

    if data is None:
        return UnrecognizedShape(reason="response has no data")
    return UnrecognizedShape(reason=f"data is {type(data).__name__}")


def normalize_response(raw: Any) -> List[BranchBatch]:
    """Map any known response shape to a list of BranchBatch.

    An empty list is the "no data" signal; callers treat it as non-fatal.
    """
    shape = classify_response(raw)

    if isinstance(shape, BranchListShape):
        return [_branch_from_dict(b) for b in shape.branches]

    if isinstance(shape, SingleBranchShape):
        return [_branch_from_dict(shape.branch)]

    if isinstance(shape, ReportTransactionsShape):
        return [
            BranchBatch(
                merchant=shape.commerce.get("name") or UNKNOWN,
                location=BranchLocation(id=UNKNOWN, address=""),
                sales=[report_transaction_to_sale(t) for t in shape.transactions],
            )
        ]

    logger.debug(f"Unrecognized POS response shape: {shape.reason}")
    return []


def _branch_from_dict(branch: Dict[str, Any]) -> BranchBatch:
    location = branch.get("location")
    if not isinstance(location, dict):
        location = {}
    sales = branch.get("sales")
    return BranchBatch(
        merchant=branch.get("merchant"),
        location=BranchLocation(
            id=_str_or_none(location.get("id")),
            address=_str_or_none(location.get("address")),
        ),
        sales=[s for s in sales if isinstance(s, dict)] if isinstance(sales, list) else [],
    )


def report_transaction_to_sale(txn: Dict[str, Any]) -> RawSale:
    """Remap a report-endpoint transaction into the canonical sale shape.

    The report endpoint has a single ``amount`` field, used for both the
    sale and the total amount.
    """
    amount = txn.get("amount")
    sale_id = _first_present(txn, ("id", "transactionId"))
    if sale_id is None:
        sale_id = "{}-{}-{}".format(
            txn.get("serialNumber") or UNKNOWN,
            txn.get("dateTime") or UNKNOWN,
            format_amount(amount) if amount is not None else UNKNOWN,
        )
    return {
        "id": sale_id,
        "sequenceNumber": txn.get("sequenceNumber") or None,
        "serialNumber": txn.get("serialNumber"),
        "status": txn.get("status"),
        "transactionDateTime": txn.get("dateTime") or txn.get("transactionDateTime"),
        "transactionType": txn.get("type") or txn.get("transactionType"),
        "saleAmount": amount if amount is not None else txn.get("saleAmount"),
        "totalAmount": amount if amount is not None else txn.get("totalAmount"),
        "items": txn.get("items") or [],
    }


# ============== Sale identifiers ==============

def resolve_sale_id(sale: RawSale) -> Optional[str]:
    """Return the native sale id, or a synthesized fallback."""
    native = _first_present(sale, SALE_ID_KEYS)
    if native is not None:
        return native
    synthesized = synthesize_sale_id(sale)
    logger.warning(f"Generated fallback ID for transaction: {synthesized}")
    return synthesized


def synthesize_sale_id(sale: RawSale) -> str:
    """Build a best-effort dedup key for a sale without a native id.

    Format: ``{serial|unknown}-{14 timestamp digits}-{amount}-{sequence}``.
    Reproducible as long as the sale carries a sequenceNumber; otherwise a
    random number stands in. Not collision-free across unrelated sales that
    share serial, timestamp and amount.
    """
    timestamp = sale.get("transactionDateTime") or datetime.now(timezone.utc).isoformat()
    digits = re.sub(r"[^0-9]", "", str(timestamp))[:14]
    serial = sale.get("serialNumber") or UNKNOWN
    amount = sale.get("totalAmount") or sale.get("saleAmount") or 0
    sequence = sale.get("sequenceNumber") or random.randint(0, 9999)
    return f"{serial}-{digits}-{format_amount(amount)}-{sequence}"


def format_amount(value: Any) -> str:
    """Render an amount the way upstream prints it (no trailing .0)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _first_present(data: Dict[str, Any], keys) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return str(value)
    return None


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
