"""
Commerce Ledger API - Main Application.

FastAPI application with CORS enabled for the POS and back-office frontends.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from services.settings import LedgerSettings

logging.basicConfig(
    level=LedgerSettings.from_env().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Commerce Ledger API",
    description="REST API for sales, stock and credit bookkeeping",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins once the frontend hosts are fixed
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "commerce-ledger-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Commerce Ledger API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import credit, feed, products, sales

app.include_router(sales.router, prefix="/api/v1", tags=["Sales"])
app.include_router(credit.router, prefix="/api/v1", tags=["Credit"])
app.include_router(products.router, prefix="/api/v1", tags=["Products"])
app.include_router(feed.router, prefix="/api/v1", tags=["Feed"])
