from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cato import __version__
from cato.api.errors import register_exception_handlers
from cato.api.routers import health, poams, roles
from cato.common.logger import configure_logging
from cato.core.config import get_settings

settings = get_settings()
configure_logging(settings)

app = FastAPI(
    title=settings.app_name,
    description="Continuous ATO compliance dashboard: POA&M approval workflow",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(health.router, prefix="/api")
app.include_router(roles.router, prefix="/api")
app.include_router(poams.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
