import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).parent.parent / ".env")

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

import main
from routers.recap_router import create_recap_router

PROJECT_ROOT = Path(__file__).parent.parent

app = FastAPI()

# CORS: support both local development and production
allowed_origins = [
    "http://localhost:3000",
    "http://localhost:5173",
]
# Add Railway production URL if set
railway_url = os.getenv("RAILWAY_PUBLIC_DOMAIN")
if railway_url:
    allowed_origins.append(f"https://{railway_url}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup_event():
    if main.API_KEYS:
        print(f"[Init] Loaded {len(main.API_KEYS)} Moralis API key(s)")
    else:
        print("[Init] MORALIS_API_KEY not set, /api/swaps will refuse requests")


app.include_router(create_recap_router(
    default_chains=main.DEFAULT_CHAINS,
    api_key_configured=lambda: bool(main.API_KEYS),
    is_valid_address=main.is_valid_evm_address,
    resolve_chains=main.resolve_chains,
    recap_wallet=lambda wallet, chains, limit: main.recap_wallet(wallet, chains, limit),
))


# Serve frontend static files (for production)
# IMPORTANT: This must be defined AFTER all API routes!
FRONTEND_DIST = PROJECT_ROOT / "frontend" / "dist"
if FRONTEND_DIST.exists():
    app.mount("/", StaticFiles(directory=str(FRONTEND_DIST), html=True), name="static")
    print("[Init] Frontend static files mounted from:", FRONTEND_DIST)
else:
    print("[Init] Frontend dist folder not found. Running in API-only mode.")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
