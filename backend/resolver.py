"""
Canonical asset resolution: one (chain, address) per held symbol, so a
token bridged to several chains or held wrapped and unwrapped is priced once.
"""

import math
from dataclasses import dataclass

from portfolio import LedgerSummary, token_key


@dataclass(frozen=True)
class ChosenToken:
    symbol: str
    chain: str
    address: str
    amount: float


def _positive(value) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def resolve_canonical_assets(summary: LedgerSummary) -> dict[str, ChosenToken]:
    """Pick the token key with the largest remaining amount for each held symbol.

    Equal amounts keep whichever key was recorded first during replay.
    """
    chosen: dict[str, ChosenToken] = {}
    for key, amount in summary.token_keys.items():
        if not _positive(amount):
            continue
        meta = summary.token_key_meta.get(key)
        if not meta or not meta.symbol:
            continue
        if not _positive(summary.holdings.get(meta.symbol)):
            continue
        current = chosen.get(meta.symbol)
        if current is None or amount > current.amount:
            chosen[meta.symbol] = ChosenToken(
                symbol=meta.symbol,
                chain=meta.chain,
                address=meta.address,
                amount=amount,
            )
    return chosen


def group_by_chain(chosen: dict[str, ChosenToken]) -> dict[str, list[str]]:
    """chain → addresses to price in one batched lookup."""
    tokens_by_chain: dict[str, list[str]] = {}
    for sel in chosen.values():
        if not sel.chain or not sel.address or not _positive(sel.amount):
            continue
        tokens_by_chain.setdefault(sel.chain, []).append(sel.address)
    return tokens_by_chain


def amount_by_token_key(chosen: dict[str, ChosenToken]) -> dict[str, float]:
    return {
        token_key(sel.chain, sel.address): sel.amount
        for sel in chosen.values()
        if sel.chain and sel.address and _positive(sel.amount)
    }
