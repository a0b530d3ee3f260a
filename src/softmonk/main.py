from __future__ import annotations

import os
import traceback
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

from .catalog import CatalogIndex, HttpCatalogStore, JsonCatalogStore, PlatformHints
from .devices import SQLiteDeviceStore
from .errors import CatalogUnavailableError
from .graph import SoftMonkGraph
from .llm import ProviderRouter
from .schemas import ChatRequest, Session

ROOT = Path(__file__).resolve().parents[2]
CATALOG_JSON_PATH = ROOT / "data" / "vendor_map.json"

load_dotenv(ROOT / ".env")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


CATALOG_URL = os.getenv("SOFTMONK_CATALOG_URL", "").strip()
CATALOG_TIMEOUT_SECONDS = _env_float("SOFTMONK_CATALOG_TIMEOUT_SECONDS", 5.0)
DEVICE_DB_PATH = Path(os.getenv("SOFTMONK_DEVICE_DB", str(ROOT / "data" / "devices.db")))
CORS_ORIGINS = [o.strip() for o in os.getenv("SOFTMONK_CORS_ORIGINS", "*").split(",") if o.strip()]


def _build_catalog() -> CatalogIndex:
    if CATALOG_URL:
        store = HttpCatalogStore(CATALOG_URL, timeout_seconds=CATALOG_TIMEOUT_SECONDS)
        print(f"[SoftMonk] Catalog source: {CATALOG_URL}")
    else:
        store = JsonCatalogStore(CATALOG_JSON_PATH)
        print(f"[SoftMonk] Catalog source: {CATALOG_JSON_PATH}")
    return CatalogIndex(store)


def _session_from_headers(session_id: Optional[str], user_id: Optional[str]) -> Optional[Session]:
    if not user_id:
        return None
    return Session(id=session_id or user_id, user_id=user_id)


catalog = _build_catalog()
router = ProviderRouter()
graph = SoftMonkGraph(catalog, router, devices=SQLiteDeviceStore(DEVICE_DB_PATH))
print(f"[SoftMonk] Default provider: {router.default_provider}")

app = FastAPI(title="SoftMonk")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        where = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{where}: {err.get('msg', 'invalid')}")
    print(f"[WARN] Rejected {request.url.path}: {problems}")
    return JSONResponse(status_code=422, content={"error": "invalid request: " + "; ".join(problems)})


@app.post("/api/chat")
def chat(
    payload: ChatRequest,
    x_session_id: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
    user_agent: Optional[str] = Header(default=None),
    sec_ch_ua_platform: Optional[str] = Header(default=None),
):
    try:
        result = graph.resolve(
            payload.history,
            payload.filter,
            session=_session_from_headers(x_session_id, x_user_id),
            provider_id=payload.provider,
            hints=PlatformHints(user_agent=user_agent or "", platform=sec_ch_ua_platform or ""),
        )
    except Exception as err:
        traceback.print_exc()
        return JSONResponse(status_code=500, content={"error": f"chat failed: {err}"})
    return result.to_wire()


@app.get("/api/catalog")
def list_catalog():
    try:
        names = catalog.names()
    except CatalogUnavailableError as err:
        return JSONResponse(status_code=503, content={"error": str(err)})
    return {"count": len(names), "items": names}


@app.post("/api/catalog/refresh")
def refresh_catalog():
    catalog.invalidate()
    try:
        items = catalog.load()
    except CatalogUnavailableError as err:
        return JSONResponse(status_code=503, content={"error": str(err)})
    return {"count": len(items)}


@app.get("/api/providers")
def providers():
    return {"default": router.default_provider, "providers": router.describe()}
