"""
Swap event normalizer — turns raw provider swap records into canonical
SwapEvent objects the portfolio ledger can replay.
"""

import math
from dataclasses import dataclass

TRADE_KINDS = ("buy", "sell")


# ── Data classes ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SwapEvent:
    chain: str
    timestamp: str  # ISO-8601, sorts lexicographically
    kind: str  # "buy" | "sell"
    asset_symbol: str
    quantity: float
    usd_amount: float
    token_address: str | None = None  # bought token on buy, sold token on sell


# ── Helpers ───────────────────────────────────────────────────────────────

def _strip_wrapped_prefix(symbol: str) -> str:
    if len(symbol) > 1 and symbol[0] in ("W", "w"):
        return symbol[1:]
    return symbol


def get_base_token_symbol(pair_label) -> str | None:
    """Base side of a "BASE/QUOTE" pair label, with wrapped prefix removed."""
    if not isinstance(pair_label, str) or not pair_label:
        return None
    base_raw = pair_label.split("/")[0].strip()
    if not base_raw:
        return None
    return _strip_wrapped_prefix(base_raw)


def to_finite_float(value) -> float | None:
    """Coerce to float; None for missing, unparseable or non-finite values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


def _side(item: dict, name: str) -> dict:
    side = item.get(name)
    return side if isinstance(side, dict) else {}


def simplify_swap_item(item: dict, chain: str) -> dict:
    """Flatten a provider swap record into the shape normalize_swap() reads."""
    bought = _side(item, "bought")
    sold = _side(item, "sold")
    bought_address = bought.get("address")
    sold_address = sold.get("address")
    return {
        "chain": chain,
        "transactionType": item.get("transactionType"),
        "baseQuotePrice": item.get("baseQuotePrice"),
        "blockTimestamp": item.get("blockTimestamp"),
        "pairLabel": item.get("pairLabel"),
        "totalValueUsd": item.get("totalValueUsd"),
        "boughtAmount": to_finite_float(bought.get("amount")),
        "boughtUsdAmount": to_finite_float(bought.get("usdAmount")),
        "boughtAddress": bought_address if isinstance(bought_address, str) else None,
        "soldAmount": to_finite_float(sold.get("amount")),
        "soldUsdAmount": to_finite_float(sold.get("usdAmount")),
        "soldAddress": sold_address if isinstance(sold_address, str) else None,
    }


# ── Normalization ─────────────────────────────────────────────────────────

SIDE_FIELDS = {
    "buy": ("boughtAmount", "boughtUsdAmount", "boughtAddress"),
    "sell": ("soldAmount", "soldUsdAmount", "soldAddress"),
}


def normalize_swap(record: dict, chain: str | None = None) -> SwapEvent | None:
    """
    Map one simplified swap record to a SwapEvent.

    Returns None for anything that cannot be replayed: unknown trade type,
    unusable pair label, or a non-positive / non-finite amount on the traded
    side. Never raises on malformed input.
    """
    if not isinstance(record, dict):
        return None

    kind = str(record.get("transactionType") or "").lower()
    if kind not in TRADE_KINDS:
        return None

    symbol = get_base_token_symbol(record.get("pairLabel"))
    if not symbol:
        return None

    amount_field, usd_field, address_field = SIDE_FIELDS[kind]
    quantity = to_finite_float(record.get(amount_field))
    usd_amount = to_finite_float(record.get(usd_field))
    if quantity is None or usd_amount is None:
        return None
    quantity = abs(quantity)
    usd_amount = abs(usd_amount)
    if quantity <= 0 or usd_amount <= 0:
        return None

    event_chain = chain if chain is not None else record.get("chain")
    address = record.get(address_field)
    timestamp = record.get("blockTimestamp")

    return SwapEvent(
        chain=event_chain if isinstance(event_chain, str) else "",
        timestamp=timestamp if isinstance(timestamp, str) else "",
        kind=kind,
        asset_symbol=symbol,
        quantity=quantity,
        usd_amount=usd_amount,
        token_address=address if isinstance(address, str) and address else None,
    )


def sort_key(event: SwapEvent) -> str:
    return event.timestamp


def normalize_swaps(records) -> list[SwapEvent]:
    """Normalize a flat list of records (all chains), oldest first."""
    events = []
    for record in records or []:
        event = normalize_swap(record)
        if event is not None:
            events.append(event)
    events.sort(key=sort_key)
    return events
