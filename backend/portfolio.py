"""
Portfolio replay engine — reconstructs realized P&L and deployed capital
by replaying a wallet's swaps chronologically, maintaining a virtual
portfolio with average-cost basis tracking per token symbol.
"""

from dataclasses import dataclass, field

from swap_events import SwapEvent, sort_key


# ── Data classes ──────────────────────────────────────────────────────────

@dataclass
class Position:
    symbol: str
    held_quantity: float = 0.0
    cost_basis_usd: float = 0.0  # aggregate cost of the quantity still held


@dataclass(frozen=True)
class TokenKeyMeta:
    symbol: str
    chain: str
    address: str


@dataclass
class LedgerState:
    positions: dict[str, Position] = field(default_factory=dict)
    # "chain:address" → amount held at that on-chain address
    token_keys: dict[str, float] = field(default_factory=dict)
    token_key_meta: dict[str, TokenKeyMeta] = field(default_factory=dict)

    realized_pnl_usd: float = 0.0
    cash_flow_usd: float = 0.0
    peak_deployed_usd: float = 0.0  # most negative cash flow seen, never > 0
    cash_flow_trace: list[float] = field(default_factory=list)

    processed_count: int = 0
    skipped_count: int = 0


@dataclass(frozen=True)
class LedgerSummary:
    realized_pnl_usd: float = 0.0
    peak_deployed_usd: float = 0.0
    cash_flow_trace: tuple[float, ...] = ()
    holdings: dict[str, float] = field(default_factory=dict)
    cost_basis_usd: dict[str, float] = field(default_factory=dict)
    token_keys: dict[str, float] = field(default_factory=dict)
    token_key_meta: dict[str, TokenKeyMeta] = field(default_factory=dict)
    processed_count: int = 0
    skipped_count: int = 0


# ── Core helpers ──────────────────────────────────────────────────────────

def token_key(chain: str, address: str) -> str:
    return f"{chain}:{address.lower()}"


def get_or_create_position(state: LedgerState, symbol: str) -> Position:
    if symbol not in state.positions:
        state.positions[symbol] = Position(symbol=symbol)
    return state.positions[symbol]


def current_holding(state: LedgerState, symbol: str) -> float:
    pos = state.positions.get(symbol)
    return pos.held_quantity if pos else 0.0


def record_cash_flow(state: LedgerState, delta_usd: float):
    state.cash_flow_usd += delta_usd
    state.cash_flow_trace.append(state.cash_flow_usd)
    if state.cash_flow_usd < state.peak_deployed_usd:
        state.peak_deployed_usd = state.cash_flow_usd


def _tracked_key(state: LedgerState, event: SwapEvent) -> str | None:
    if not event.chain or not event.token_address:
        return None
    key = token_key(event.chain, event.token_address)
    if key not in state.token_key_meta:
        state.token_key_meta[key] = TokenKeyMeta(
            symbol=event.asset_symbol,
            chain=event.chain,
            address=event.token_address,
        )
    return key


# ── Transaction processors ───────────────────────────────────────────────

def process_buy(state: LedgerState, event: SwapEvent) -> bool:
    pos = get_or_create_position(state, event.asset_symbol)
    pos.held_quantity += event.quantity
    pos.cost_basis_usd += event.usd_amount
    record_cash_flow(state, -event.usd_amount)

    key = _tracked_key(state, event)
    if key:
        state.token_keys[key] = state.token_keys.get(key, 0.0) + event.quantity
    return True


def process_sell(state: LedgerState, event: SwapEvent) -> bool:
    available = current_holding(state, event.asset_symbol)
    if available <= 0:
        # Nothing bought yet, or already sold out
        return False

    pos = state.positions[event.asset_symbol]
    sell_quantity = min(available, event.quantity)
    realized_usd = event.usd_amount * (sell_quantity / event.quantity)

    # Average cost is taken before the position is mutated
    cost_before = pos.cost_basis_usd
    if cost_before > 0:
        avg_cost_per_unit = cost_before / available
        realized_cost_usd = avg_cost_per_unit * sell_quantity
        state.realized_pnl_usd += realized_usd - realized_cost_usd
        pos.cost_basis_usd = max(0.0, cost_before - realized_cost_usd)

    pos.held_quantity = available - sell_quantity
    if pos.held_quantity <= 0:
        pos.held_quantity = 0.0
        pos.cost_basis_usd = 0.0

    record_cash_flow(state, realized_usd)

    key = _tracked_key(state, event)
    if key:
        current = state.token_keys.get(key, 0.0)
        token_sell_quantity = min(current, sell_quantity)
        state.token_keys[key] = max(0.0, current - token_sell_quantity)
    return True


# ── Main pipeline ────────────────────────────────────────────────────────

TX_PROCESSORS = {
    "buy": process_buy,
    "sell": process_sell,
}


def summarize(state: LedgerState) -> LedgerSummary:
    return LedgerSummary(
        realized_pnl_usd=state.realized_pnl_usd,
        peak_deployed_usd=state.peak_deployed_usd,
        cash_flow_trace=tuple(state.cash_flow_trace),
        holdings={s: p.held_quantity for s, p in state.positions.items()},
        cost_basis_usd={s: p.cost_basis_usd for s, p in state.positions.items()},
        token_keys=dict(state.token_keys),
        token_key_meta=dict(state.token_key_meta),
        processed_count=state.processed_count,
        skipped_count=state.skipped_count,
    )


def replay_swaps(events: list[SwapEvent]) -> LedgerSummary:
    """
    Replay swap events oldest-first through a fresh ledger.

    Average-cost accounting is order dependent, so events are (stably)
    re-sorted by timestamp even if the caller already sorted them.
    """
    state = LedgerState()

    for event in sorted(events, key=sort_key):
        processor = TX_PROCESSORS.get(event.kind)
        if not processor or not processor(state, event):
            state.skipped_count += 1
            continue
        state.processed_count += 1

    return summarize(state)
