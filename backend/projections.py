"""
"What if" projections for the recap: what the invested capital would have
earned compounding at fixed yearly rates, plus the plain-text share line.
"""

import math

COMP_YEARS = 5
COMP_RATES = (0.05, 0.15, 0.25)
CONSERVATIVE_APY = 0.10
SHARE_TITLE = "Trading Wrapped 2024"


def _finite(*values) -> bool:
    for v in values:
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
            return False
    return True


def compound_future_value(principal: float, annual_rate: float, years: int) -> float:
    if not _finite(principal, annual_rate, years):
        return math.nan
    return principal * (1 + annual_rate) ** years


def build_annual_schedule(principal: float, annual_rate: float, years: int) -> list[dict]:
    """Year-by-year balance rows: {year, start, interest, end}."""
    if not _finite(principal, annual_rate, years):
        return []
    rows = []
    balance = principal
    for year in range(1, int(years) + 1):
        start = balance
        end = start * (1 + annual_rate)
        rows.append({"year": year, "start": start, "interest": end - start, "end": end})
        balance = end
    return rows


def build_compound_scenarios(invested: float, rates=COMP_RATES, years: int = COMP_YEARS) -> list[dict]:
    if not _finite(invested) or invested <= 0:
        return []
    scenarios = []
    for rate in rates:
        final = compound_future_value(invested, rate, years)
        scenarios.append({
            "rate": rate,
            "final": final,
            "earnings": final - invested,
            "schedule": build_annual_schedule(invested, rate, years),
        })
    return scenarios


def conservative_projection(invested: float, years: int = COMP_YEARS) -> dict:
    final = compound_future_value(invested, CONSERVATIVE_APY, years)
    profit = max(0.0, final - invested) if _finite(final) else 0.0
    return {"rate": CONSERVATIVE_APY, "final": final, "profit": profit}


def format_usd(value) -> str:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return "-"
    if not math.isfinite(num):
        return "-"
    sign = "-" if num < 0 else ""
    return f"{sign}${abs(num):,.2f}"


def build_share_text(result: dict) -> str:
    """One-line recap for social sharing, from a recap response dict."""
    parts = [
        SHARE_TITLE,
        f"Invested: {format_usd(result.get('investedUsd'))}",
        f"PnL: {format_usd(result.get('pnl'))}",
        f"Realized: {format_usd(result.get('realizedPnlUsd'))}",
        f"Unrealized: {format_usd(result.get('unrealizedPnlUsd'))}",
    ]
    return " · ".join(parts)
