import sys, os, uvicorn, logging
from contextlib import asynccontextmanager
from typing import Optional, Protocol, cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config.settings import settings
from services.extraction_orchestrator import ExtractionOrchestrator
from services.extraction_providers import build_provider
from services.row_store import RowStore
from services.upload_audit_service import UploadAuditService
from api.middleware.request_ids import RequestIdMiddleware
from api.routers import labels, system, upload

os.makedirs(settings.log_dir, exist_ok=True)
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                    handlers=[logging.StreamHandler(), logging.FileHandler(os.path.join(settings.log_dir, "mpl.log"))])
logger = logging.getLogger(__name__)


class MplAppState(Protocol):
    settings: object
    orchestrator: Optional[ExtractionOrchestrator]
    row_store: Optional[RowStore]
    audit_service: Optional[UploadAuditService]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("API starting up...")
    state = cast(MplAppState, app.state)
    state.settings = settings
    state.row_store = RowStore(ttl=settings.row_store_ttl_seconds)
    try:
        provider = build_provider(settings)
        state.orchestrator = ExtractionOrchestrator(provider)
        state.audit_service = UploadAuditService(settings) if settings.audit_enabled else None
        logger.info("Extraction provider '%s' ready.", provider.name)
    except Exception as e:
        logger.critical(f"FATAL: System initialization failed: {e}", exc_info=True)
        state.orchestrator = None
        state.audit_service = None
    yield
    if hasattr(state, "row_store") and state.row_store is not None:
        state.row_store.clear()
    state.orchestrator = None
    state.audit_service = None
    logger.info("API shutting down.")


app = FastAPI(title="MPL Shelf Gap API", version="1.0", lifespan=lifespan)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins(), allow_credentials=True,
                   allow_methods=["*"], allow_headers=["*"], expose_headers=["x-extraction-provider", "X-Request-ID"])

app.include_router(upload.router)
app.include_router(labels.router)
app.include_router(system.router)


@app.get("/", tags=["General"])
def read_root(): return {"message": "Upload an inventory report to /api/upload"}


if __name__ == "__main__":
    uvicorn.run("api.main:app", host="0.0.0.0", port=8000, reload=True)
