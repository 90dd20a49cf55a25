"""
Valuation: prices the canonical holdings and turns a replayed ledger into
the recap numbers (pnl, realized/unrealized, invested capital).
"""

import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Callable

from portfolio import LedgerSummary, replay_swaps, token_key
from resolver import ChosenToken, amount_by_token_key, group_by_chain, resolve_canonical_assets
from swap_events import normalize_swaps

# (chain, [address]) → {address: usd_price or None}
PriceLookup = Callable[[str, list[str]], dict]

DEFAULT_PRICE_TIMEOUT_SECONDS = 15.0
MAX_PRICE_WORKERS = 8


@dataclass
class ValuationResult:
    pnl: float = 0.0
    realized_pnl_usd: float = 0.0
    unrealized_pnl_usd: float = 0.0
    invested_usd: float = 0.0
    holdings: dict[str, float] = field(default_factory=dict)
    holdings_value_usd: float = 0.0

    def to_dict(self) -> dict:
        """Response shape consumed by the frontend."""
        return {
            "pnl": self.pnl,
            "realizedPnlUsd": self.realized_pnl_usd,
            "unrealizedPnlUsd": self.unrealized_pnl_usd,
            "investedUsd": self.invested_usd,
            "holdings": dict(self.holdings),
            "holdingsValueUsd": self.holdings_value_usd,
        }


# ── Price fan-out ─────────────────────────────────────────────────────────

def _clean_prices(raw) -> dict[str, float]:
    prices = {}
    if not isinstance(raw, dict):
        return prices
    for address, price in raw.items():
        if not isinstance(address, str) or isinstance(price, bool):
            continue
        try:
            value = float(price)
        except (TypeError, ValueError):
            continue
        if math.isfinite(value):
            prices[address.lower()] = value
    return prices


def fetch_prices(
    tokens_by_chain: dict[str, list[str]],
    price_lookup: PriceLookup,
    timeout: float = DEFAULT_PRICE_TIMEOUT_SECONDS,
) -> dict[str, dict[str, float]]:
    """
    Look up prices for every chain in parallel.

    A chain whose lookup raises or does not finish within `timeout` seconds
    gets an empty price table; other chains are unaffected.
    """
    prices: dict[str, dict[str, float]] = {chain: {} for chain in tokens_by_chain}
    if not tokens_by_chain:
        return prices

    executor = ThreadPoolExecutor(max_workers=min(MAX_PRICE_WORKERS, len(tokens_by_chain)))
    futures = {
        executor.submit(price_lookup, chain, list(addresses)): chain
        for chain, addresses in tokens_by_chain.items()
    }
    try:
        for future in as_completed(futures, timeout=timeout):
            chain = futures[future]
            try:
                prices[chain] = _clean_prices(future.result())
            except Exception as e:
                print(f"[Prices] {chain}: lookup failed ({e}), valuing at 0", flush=True)
    except FutureTimeout:
        pending = [futures[f] for f in futures if not f.done()]
        print(f"[Prices] Timed out after {timeout}s waiting for: {', '.join(pending)}", flush=True)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    return prices


# ── Aggregation ───────────────────────────────────────────────────────────

def value_holdings(
    summary: LedgerSummary,
    chosen: dict[str, ChosenToken],
    prices: dict[str, dict[str, float]],
) -> ValuationResult:
    amounts = amount_by_token_key(chosen)

    holdings_value_usd = 0.0
    for chain, chain_prices in prices.items():
        for address, usd_price in chain_prices.items():
            if not math.isfinite(usd_price):
                continue
            amount = amounts.get(token_key(chain, address))
            if not amount or amount <= 0:
                continue
            holdings_value_usd += amount * usd_price

    filtered_holdings = {
        symbol: amount
        for symbol, amount in summary.holdings.items()
        if math.isfinite(amount) and amount > 0
    }

    remaining_cost_usd = sum(
        summary.cost_basis_usd.get(symbol, 0.0) or 0.0 for symbol in filtered_holdings
    )
    unrealized_pnl_usd = holdings_value_usd - remaining_cost_usd

    return ValuationResult(
        pnl=summary.realized_pnl_usd + unrealized_pnl_usd,
        realized_pnl_usd=summary.realized_pnl_usd,
        unrealized_pnl_usd=unrealized_pnl_usd,
        invested_usd=abs(summary.peak_deployed_usd),
        holdings=filtered_holdings,
        holdings_value_usd=holdings_value_usd,
    )


# ── Main pipeline ────────────────────────────────────────────────────────

def recap_swaps(
    records: list[dict],
    price_lookup: PriceLookup,
    timeout: float = DEFAULT_PRICE_TIMEOUT_SECONDS,
) -> ValuationResult:
    """Full recap: normalize → replay → resolve → price → value."""
    events = normalize_swaps(records)
    summary = replay_swaps(events)
    if summary.skipped_count:
        print(f"[Recap] Skipped {summary.skipped_count} swaps with no prior holding", flush=True)

    chosen = resolve_canonical_assets(summary)
    prices = fetch_prices(group_by_chain(chosen), price_lookup, timeout=timeout)
    return value_holdings(summary, chosen, prices)
