import json
import os
import re
import sys
import threading
from pathlib import Path

import requests
from dotenv import load_dotenv

from swap_events import simplify_swap_item
from valuation import recap_swaps

# Load .env from project root
load_dotenv(Path(__file__).parent.parent / ".env")

MORALIS_BASE = os.getenv("MORALIS_BASE", "https://deep-index.moralis.io/api/v2.2")
DEFAULT_CHAINS = [
    "eth",
    "bsc",
    "arbitrum",
    "base",
    "optimism",
    "linea",
]
SWAPS_PAGE_LIMIT = max(1, min(100, int(os.getenv("SWAPS_PAGE_LIMIT", 100))))
SWAPS_MAX_PAGES = int(os.getenv("SWAPS_MAX_PAGES", 1000))
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", 15))
PRICE_TIMEOUT_SECONDS = float(os.getenv("PRICE_TIMEOUT_SECONDS", 15))

EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def _load_api_keys() -> list[str]:
    """Load all MORALIS_API_KEY variants from environment.

    Reads MORALIS_API_KEY, MORALIS_API_KEY_1, MORALIS_API_KEY_2, ... up to _99.
    Returns list of valid (non-empty) keys.
    """
    keys = []
    base = os.getenv("MORALIS_API_KEY", "")
    if base:
        keys.append(base)
    for i in range(1, 100):
        k = os.getenv(f"MORALIS_API_KEY_{i}", "")
        if k:
            keys.append(k)
        elif i > 10:
            # Stop scanning after a gap beyond index 10
            break
    return keys


API_KEYS = _load_api_keys()
_current_key_index = 0
# Price lookups run on worker threads and share the key index
_key_lock = threading.Lock()


def _get_current_key() -> tuple[int, str]:
    """Return (index, key) of the current API key."""
    with _key_lock:
        if not API_KEYS:
            return _current_key_index, ""
        return _current_key_index, API_KEYS[_current_key_index % len(API_KEYS)]


def _rotate_key(used_index: int) -> bool:
    """Switch away from the key at `used_index`. Returns False if all keys exhausted."""
    global _current_key_index
    with _key_lock:
        if len(API_KEYS) <= 1:
            return False
        if used_index != _current_key_index:
            # Another request already rotated past this key; retry with the current one
            return True
        old_index = _current_key_index
        _current_key_index = (_current_key_index + 1) % len(API_KEYS)
        # Full circle, all keys exhausted
        if _current_key_index == 0:
            _current_key_index = old_index
            return False
        new_index = _current_key_index
    print(f"[Moralis] API key limit reached, switching to key #{new_index + 1}/{len(API_KEYS)}", flush=True)
    return True


def _api_request(method: str, url: str, **kwargs) -> requests.Response:
    """Make an API request with automatic key rotation on 429."""
    while True:
        key_index, api_key = _get_current_key()
        response = requests.request(
            method,
            url,
            headers={
                "x-api-key": api_key,
                "accept": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
            **kwargs,
        )
        if response.status_code == 429:
            if _rotate_key(key_index):
                continue
        return response


# ── Input helpers ─────────────────────────────────────────────────────────

def is_valid_evm_address(address) -> bool:
    return isinstance(address, str) and bool(EVM_ADDRESS_RE.match(address))


def resolve_chains(chains) -> list[str]:
    """Keep only supported chains; anything but a list means all of them."""
    if not isinstance(chains, list):
        return list(DEFAULT_CHAINS)
    resolved = []
    for c in chains:
        c = c.strip() if isinstance(c, str) else ""
        if c in DEFAULT_CHAINS:
            resolved.append(c)
    return resolved


def extract_swaps_from_response(data) -> list:
    if not data:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for field in ("result", "swaps"):
            if isinstance(data.get(field), list):
                return data[field]
    return []


def get_next_cursor(data) -> str | None:
    if not isinstance(data, dict):
        return None
    cursor = data.get("cursor") or data.get("next_cursor") or data.get("nextCursor")
    if cursor:
        return cursor
    pagination = data.get("pagination")
    if isinstance(pagination, dict):
        return pagination.get("cursor") or pagination.get("next_cursor") or None
    return None


# ── Swaps ─────────────────────────────────────────────────────────────────

def fetch_chain_swaps(wallet: str, chain: str, limit: int = SWAPS_PAGE_LIMIT) -> tuple[list[dict], dict]:
    """Fetches all wallet swaps on one chain, following the cursor.

    Returns (simplified records, meta). A failed page stops this chain only;
    the error is reported in meta["error"].
    """
    url = f"{MORALIS_BASE}/wallets/{wallet}/swaps"
    cursor = None
    combined = []
    page_count = 0
    last_status = 200
    error = None

    while True:
        params = {"chain": chain, "limit": limit}
        if cursor:
            params["cursor"] = cursor

        try:
            response = _api_request("GET", url, params=params)
        except requests.RequestException as e:
            print(f"[Swaps] {chain}: request error on page {page_count + 1}: {e}", flush=True)
            error = {"chain": chain, "status": 0, "details": {"error": "Network error"}}
            break

        last_status = response.status_code
        try:
            data = response.json()
        except ValueError:
            data = {"error": "Invalid JSON from Moralis"}

        if not response.ok:
            print(f"[Swaps] {chain}: HTTP {response.status_code}", flush=True)
            error = {"chain": chain, "status": response.status_code, "details": data}
            break

        items = extract_swaps_from_response(data)
        combined.extend(items)
        page_count += 1
        print(f"[Swaps] {chain}: page {page_count} → {len(items)} swaps", flush=True)

        next_cursor = get_next_cursor(data)
        if not next_cursor or next_cursor == cursor:
            break
        cursor = next_cursor

        # Safety to avoid infinite loops
        if page_count >= SWAPS_MAX_PAGES:
            print(f"[Swaps] {chain}: stopping after {page_count} pages", flush=True)
            break

    records = [simplify_swap_item(item, chain) for item in combined if isinstance(item, dict)]
    meta = {
        "count": len(records),
        "pages": page_count,
        "lastStatus": last_status,
        "error": error,
    }
    return records, meta


def fetch_wallet_swaps(wallet: str, chains: list[str], limit: int = SWAPS_PAGE_LIMIT) -> tuple[list[dict], list[dict]]:
    """All swaps across chains, flattened. Returns (records, errors)."""
    records = []
    errors = []
    for chain in chains:
        chain_records, meta = fetch_chain_swaps(wallet, chain, limit)
        records.extend(chain_records)
        if meta["error"]:
            errors.append(meta["error"])
    return records, errors


# ── Prices ────────────────────────────────────────────────────────────────

def fetch_token_prices(chain: str, addresses: list[str]) -> dict[str, float]:
    """Batched USD prices for token addresses on one chain.

    Raises requests errors; the caller decides how a failed chain degrades.
    """
    if not addresses:
        return {}
    response = _api_request(
        "POST",
        f"{MORALIS_BASE}/erc20/prices",
        params={"chain": chain},
        json={"tokens": [{"token_address": a} for a in addresses]},
    )
    response.raise_for_status()
    data = response.json()
    items = data if isinstance(data, list) else (data.get("result") if isinstance(data, dict) else None)

    prices = {}
    for p in items if isinstance(items, list) else []:
        if not isinstance(p, dict):
            continue
        address = p.get("tokenAddress")
        if not isinstance(address, str):
            continue
        try:
            prices[address.lower()] = float(p.get("usdPrice"))
        except (TypeError, ValueError):
            continue
    return prices


def recap_wallet(wallet: str, chains: list[str] | None = None, limit: int = SWAPS_PAGE_LIMIT) -> dict:
    """Fetch every swap for the wallet and return the recap response dict."""
    records, errors = fetch_wallet_swaps(wallet, resolve_chains(chains), limit)
    for err in errors:
        print(f"[Recap] {wallet}: {err['chain']} failed with status {err['status']}", flush=True)
    print(f"[Recap] {wallet}: {len(records)} swaps fetched", flush=True)
    result = recap_swaps(records, fetch_token_prices, timeout=PRICE_TIMEOUT_SECONDS)
    return result.to_dict()


def main() -> None:
    if not API_KEYS:
        print("Error: specify MORALIS_API_KEY in .env file")
        return
    if len(sys.argv) < 2:
        print("Usage: python main.py <wallet_address> [chain ...]")
        sys.exit(1)

    wallet = sys.argv[1].strip()
    if not is_valid_evm_address(wallet):
        print("Invalid EVM address (expected 0x + 40 hex characters).")
        sys.exit(1)

    chains = sys.argv[2:] or None
    try:
        result = recap_wallet(wallet, chains)
    except requests.RequestException as e:
        print(f"Request error: {e}")
        return
    print(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
