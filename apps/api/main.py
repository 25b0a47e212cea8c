"""
Sponsoru - FastAPI Backend
Main application entry point: creator sign-in, social account connections,
platform statistics and sponsorship rate estimates.
"""

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import (
    health,
    auth,
    oauth_tokens,
    accounts,
    rates,
    diagnostics,
)
from services.connectors import connector_capabilities


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Sponsoru API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except (SQLAlchemyError, OSError) as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    unconfigured = [name for name, available in connector_capabilities().items() if not available]
    if unconfigured:
        print(f"⚠️ OAuth connectors not configured: {', '.join(unconfigured)}")
    if settings.ENABLE_DIAGNOSTIC_ENDPOINTS:
        print("🩺 Diagnostic endpoints enabled.")
    yield
    # Shutdown
    await engine.dispose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="Sponsoru API",
    description="Connect creator accounts, read audience stats and estimate sponsorship rates",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(oauth_tokens.router, prefix="/api", tags=["OAuth Tokens"])
app.include_router(diagnostics.router, prefix="/api", tags=["Diagnostics"])
app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
app.include_router(rates.router, prefix="/rates", tags=["Rates"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Sponsoru API",
        "version": "0.1.0",
        "status": "running"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.API_HOST, port=settings.API_PORT)
