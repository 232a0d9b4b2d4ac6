from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.core.config import settings
from app.core.firebase import init_firebase, FirebaseIdentityProvider
from app.core.database import engine, SessionLocal, Base
from app.core.redis_client import create_redis_client
from app.services.quota_store import create_quota_store
from app.services.contact_quota_service import ContactQuotaService
from app.api.v1.router import api_router
from app import models  # noqa: F401  (registers tables on Base.metadata)
import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def get_version() -> str:
    """Read version from VERSION file, fallback to default if not found."""
    version_file = os.path.join(os.path.dirname(os.path.dirname(__file__)), "VERSION")
    try:
        if os.path.exists(version_file):
            with open(version_file, "r") as f:
                version = f.read().strip()
                if version:
                    return version
    except OSError as e:
        logger.warning(f"Could not read VERSION file: {e}")
    return "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build process-wide collaborators once and hand them to routes via app.state"""
    init_firebase()

    # Create database tables
    Base.metadata.create_all(bind=engine)

    redis_client = create_redis_client() if settings.quota_backend == 'redis' else None
    store = create_quota_store(
        settings.quota_backend,
        session_factory=SessionLocal,
        redis_client=redis_client,
        ttl_hours=settings.quota_key_ttl_hours,
    )
    app.state.quota_service = ContactQuotaService(store, daily_limit=settings.daily_contact_limit)
    app.state.identity_provider = FirebaseIdentityProvider()
    logger.info(
        f"lifespan: Started - quota backend: {settings.quota_backend}, daily limit: {settings.daily_contact_limit}"
    )

    try:
        yield
    finally:
        if redis_client is not None:
            redis_client.close()
        engine.dispose()


app = FastAPI(
    title="Directory Dashboard API",
    version=get_version(),
    debug=settings.debug,
    redirect_slashes=False,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(api_router, prefix=settings.api_v1_str)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
