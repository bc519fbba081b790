# main.py
import sys
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

ROOT_DIR = Path(__file__).resolve().parent
sys.path.append(str(ROOT_DIR))

from config import settings
from database import get_mirror_engine, init_mirror_schema
from routes import open_ops, sync_control, sync_status, wip
from utils import get_logger, verify_shared_secret

load_dotenv()

logger = get_logger("main")

app = FastAPI(title="Production WIP Tracker")

mirror_engine = get_mirror_engine()
if mirror_engine is not None:
    init_mirror_schema(mirror_engine)
else:
    logger.warning("[STARTUP] EHI_DATABASE_URL not set, EHI data and sync history are unavailable")

PUBLIC_PATHS = ["/health", "/docs", "/openapi.json"]
ACCESS_HEADER = "X-Access-Key"
ACCESS_COOKIE = "access_key"


@app.middleware("http")
async def add_shared_secret_middleware(request: Request, call_next):
    secret = settings.app_shared_secret
    if not secret or any(request.url.path.startswith(path) for path in PUBLIC_PATHS):
        return await call_next(request)
    presented = request.headers.get(ACCESS_HEADER) or request.cookies.get(ACCESS_COOKIE)
    if not verify_shared_secret(secret, presented):
        return JSONResponse(status_code=401, content={"success": False, "detail": "Invalid or missing access key"})
    return await call_next(request)


@app.get("/health", include_in_schema=False)
async def health():
    return {"status": "ok"}


# Routers
app.include_router(wip.router)
app.include_router(open_ops.router)
app.include_router(sync_control.router)
app.include_router(sync_status.router)
