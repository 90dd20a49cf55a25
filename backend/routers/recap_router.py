import math
from typing import Any, Callable

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from projections import build_compound_scenarios, build_share_text, conservative_projection, COMP_YEARS


class SwapsRequest(BaseModel):
    """Request body for /api/swaps."""

    address: str = ""
    # Unusable values fall back to defaults instead of failing validation
    chains: Any = None
    limit: Any = None


class ProjectionsRequest(BaseModel):
    """Request body for /api/projections."""

    investedUsd: float
    pnl: float = 0.0
    realizedPnlUsd: float = 0.0
    unrealizedPnlUsd: float = 0.0
    years: int = COMP_YEARS


def clamp_page_limit(limit: Any, default: int = 100) -> int:
    if isinstance(limit, bool) or not isinstance(limit, (int, float)) or not math.isfinite(limit):
        return default
    return max(1, min(100, math.trunc(limit)))


def _all_finite(*values) -> bool:
    return all(math.isfinite(v) for v in values)


def create_recap_router(
    *,
    default_chains: list[str],
    api_key_configured: Callable[[], bool],
    is_valid_address: Callable[[str], bool],
    resolve_chains: Callable[[Any], list[str]],
    recap_wallet: Callable[[str, list[str], int], dict],
) -> APIRouter:
    router = APIRouter()

    @router.get("/api/chains")
    def get_chains():
        """Chains the recap can scan."""
        return {"chains": list(default_chains)}

    @router.post("/api/swaps")
    def recap_swaps(body: SwapsRequest):
        """Fetch the wallet's swaps on every requested chain and return the PnL recap."""
        address = (body.address or "").strip()

        if not api_key_configured():
            raise HTTPException(status_code=500, detail="Server not configured: missing MORALIS_API_KEY")
        if not address or not is_valid_address(address):
            raise HTTPException(status_code=400, detail="Invalid or missing EVM address")

        chains = resolve_chains(body.chains)
        limit = clamp_page_limit(body.limit)
        try:
            return recap_wallet(address, chains, limit)
        except Exception as e:
            print(f"[Recap] {address}: unexpected error: {e}", flush=True)
            raise HTTPException(status_code=500, detail="Unexpected server error") from e

    @router.post("/api/projections")
    def get_projections(body: ProjectionsRequest):
        """Compound-interest comparison for the invested amount."""
        if body.years < 1 or body.years > 50:
            raise HTTPException(status_code=400, detail="years must be between 1 and 50")

        scenarios = build_compound_scenarios(body.investedUsd, years=body.years)
        conservative = conservative_projection(body.investedUsd, years=body.years)
        finals = [s["final"] for s in scenarios] + [conservative["final"]]
        if not _all_finite(body.investedUsd, *finals):
            raise HTTPException(status_code=400, detail="investedUsd is out of range")

        return {
            "scenarios": scenarios,
            "conservative": conservative,
            "shareText": build_share_text(body.model_dump()),
        }

    return router
