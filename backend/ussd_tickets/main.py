"""FastAPI application entry point."""
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from ussd_tickets.config import settings
from ussd_tickets.database import Base, engine
from ussd_tickets.dependencies import get_catalog

# Import routers
from ussd_tickets.routers import ussd, mint, tickets

# Import all models so Base.metadata knows about them
from ussd_tickets.models.ticket import Ticket  # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(
    title="USSD Ticketing",
    description="Event tickets over USSD — M-Pesa payment, SMS receipt and best-effort NFT minting",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(ussd.router, prefix="/ussd", tags=["USSD"])
app.include_router(mint.router, prefix="/api", tags=["Mint"])
app.include_router(tickets.router, prefix="/api/tickets", tags=["Tickets"])


@app.on_event("startup")
def on_startup():
    """Create tables (SQLite dev mode) and start the catalog refresher."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    catalog = app.dependency_overrides.get(get_catalog, get_catalog)()
    catalog.start()


@app.on_event("shutdown")
def on_shutdown():
    catalog = app.dependency_overrides.get(get_catalog, get_catalog)()
    catalog.stop()


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
