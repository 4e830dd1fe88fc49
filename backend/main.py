"""
EventEase Inquiries - FastAPI Backend
"""
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.inquiry import router as inquiry_router
from config import Settings, create_live_feed, get_settings
from quoteflow import (
    DescriptionEnhancer,
    InquiryStore,
    LifecycleEngine,
    LiveViewSynchronizer,
    MemoryInquiryStore,
)

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
)
logger = logging.getLogger(__name__)


def _quote_window(settings: Settings) -> Optional[timedelta]:
    if settings.quote_window_hours <= 0:
        return None
    return timedelta(hours=settings.quote_window_hours)


def _default_enhancer(settings: Settings) -> Optional[DescriptionEnhancer]:
    if not settings.openai_api_key:
        logger.info("⚠️  OPENAI_API_KEY not set, description enhancement disabled")
        return None
    from services.text_enhancer import OpenAIDescriptionEnhancer
    return OpenAIDescriptionEnhancer(api_key=settings.openai_api_key, model=settings.enhancer_model)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[InquiryStore] = None,
    enhancer: Optional[DescriptionEnhancer] = None,
) -> FastAPI:
    """
    Build the API app.

    ``store`` and ``enhancer`` override what settings would pick, mainly
    for tests.
    """
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        db_pool = None
        feed = None

        if store is not None:
            inquiry_store = store
        elif settings.storage_backend == "postgres":
            from repositories import InquiryRepository, get_db_pool
            db_pool = await get_db_pool()
            inquiry_store = InquiryRepository(db_pool)
            await inquiry_store.ensure_schema()
        else:
            inquiry_store = MemoryInquiryStore()
        logger.info(f"✅ Inquiry store: {type(inquiry_store).__name__}")

        synchronizer = LiveViewSynchronizer(inquiry_store, max_pending=settings.live_max_pending)
        publisher = synchronizer
        if settings.live_feed_enabled:
            feed = await create_live_feed(synchronizer, settings)
            publisher = feed

        app.state.settings = settings
        app.state.synchronizer = synchronizer
        app.state.engine = LifecycleEngine(
            inquiry_store,
            publisher=publisher,
            supported_currencies=settings.supported_currencies,
            quote_window=_quote_window(settings),
        )
        app.state.enhancer = enhancer if enhancer is not None else _default_enhancer(settings)

        yield

        # Shutdown
        await synchronizer.close()
        if feed is not None:
            await feed.close()
        await inquiry_store.close()
        if db_pool is not None:
            from repositories import close_db_pool
            await close_db_pool()

    app = FastAPI(
        title="EventEase Inquiries",
        description="Event inquiry and quote lifecycle service",
        version="1.0.0",
        lifespan=lifespan
    )

    # Enable CORS for webapp
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(inquiry_router, prefix="/api", tags=["Inquiries"])

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/health")
    async def api_health():
        return {"status": "ok", "service": "eventease_inquiries"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
