import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from herbchain.catalog import DEFAULT_RULES, SUSTAINABILITY_PROOFS
from herbchain.config import get_config
from herbchain.core.ledger import Ledger
from herbchain.core.product_code import ProductCodeSigner
from herbchain.core.provenance import ProvenanceBuilder
from herbchain.core.registry import RuleRegistry
from herbchain.core.service import SubmissionService
from herbchain.core.tracker import ConservationTracker
from herbchain.errors import ConcurrencyConflict, IntegrityError, NotFoundError, StorageFault
from herbchain.logging_config import configure_logging
from herbchain.storage.base import LedgerStore
from herbchain.storage.memory import MemoryLedgerStore
from herbchain.storage.mongo import MongoLedgerStore

# ================= ROUTERS =================
from routes.admin import router as admin_router
from routes.auth import router as auth_router
from routes.events import router as events_router
from routes.ledger import router as ledger_router
from routes.public import router as public_router

logger = logging.getLogger(__name__)


async def _open_store(config) -> LedgerStore:
    if config.MONGO_URI:
        logger.info("Using MongoDB store %s", config.MONGO_DB)
        return await MongoLedgerStore(config.MONGO_URI, config.MONGO_DB).init()
    logger.info("MONGO_URI not set; using in-memory store")
    return MemoryLedgerStore()


def create_app(store: Optional[LedgerStore] = None, config=None) -> FastAPI:
    config = config or get_config()
    configure_logging(config.LOG_LEVEL, config.LOG_JSON)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        backend = store or await _open_store(config)
        rule_docs = await backend.load_rules()
        if not rule_docs:
            for doc in DEFAULT_RULES:
                await backend.save_rule(doc)
            rule_docs = DEFAULT_RULES
            logger.info("Installed %d default rules", len(rule_docs))

        ledger = Ledger(backend, config.LEDGER_SIGNING_KEY)
        registry = RuleRegistry.from_documents(rule_docs)
        tracker = ConservationTracker(backend, config.SEASON_START_MONTH)
        signer = ProductCodeSigner(config.PRODUCT_CODE_SECRET, config.PRODUCT_CODE_ALGORITHM)

        app.state.store = backend
        app.state.registry = registry
        app.state.tracker = tracker
        app.state.ledger = ledger
        app.state.signer = signer
        app.state.builder = ProvenanceBuilder(ledger, backend, signer, config, SUSTAINABILITY_PROOFS)
        app.state.service = SubmissionService(registry, tracker, ledger, config)
        app.state.config = config
        logger.info("HerbChain ledger ready at height %d", await ledger.height())
        try:
            yield
        finally:
            await backend.close()

    app = FastAPI(title="HerbChain Ledger", lifespan=lifespan)

    # ================= CORS =================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ================= ROUTERS =================
    app.include_router(auth_router)
    app.include_router(events_router)
    app.include_router(ledger_router)
    app.include_router(admin_router)
    app.include_router(public_router)

    # ================= ERRORS =================
    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(IntegrityError)
    async def integrity_failure(request: Request, exc: IntegrityError):
        logger.error("Integrity failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=409, content={"detail": str(exc), "height": exc.height})

    @app.exception_handler(ConcurrencyConflict)
    async def conflict(request: Request, exc: ConcurrencyConflict):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(StorageFault)
    async def storage_unavailable(request: Request, exc: StorageFault):
        return JSONResponse(status_code=503, content={"detail": "Storage unavailable, nothing was recorded"})

    @app.get("/", tags=["health"])
    async def health(request: Request):
        return {"status": "ok", "ledgerHeight": await request.app.state.ledger.height()}

    return app


app = create_app()
