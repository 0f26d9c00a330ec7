# app/main.py

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.core.exceptions import LedgerConflictError, LedgerWriteError, ShipmentNotFoundError
from app.routers import health, invoices, charges

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ============================================
# Create FastAPI app
# ============================================

app = FastAPI(
    title=settings.app_name,
    description="Carrier invoice reconciliation and charge approval",
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# ============================================
# CORS middleware
# ============================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================
# Error handlers
# ============================================

@app.exception_handler(ShipmentNotFoundError)
async def shipment_not_found_handler(request: Request, exc: ShipmentNotFoundError):
    return JSONResponse(status_code=404, content={"success": False, "detail": str(exc)})


@app.exception_handler(LedgerConflictError)
async def ledger_conflict_handler(request: Request, exc: LedgerConflictError):
    logger.warning(f"Ledger conflict surfaced to client: {exc}")
    return JSONResponse(status_code=409, content={"success": False, "detail": exc.user_message})


@app.exception_handler(LedgerWriteError)
async def ledger_write_handler(request: Request, exc: LedgerWriteError):
    logger.error(str(exc))
    return JSONResponse(
        status_code=502,
        content={"success": False, "detail": "Could not update charges, try again."},
    )

# ============================================
# Include routers
# ============================================

app.include_router(health.router, tags=["Health"])
app.include_router(invoices.router, prefix="/invoices", tags=["Invoices"])
app.include_router(charges.router, prefix="/shipments", tags=["Charges"])

# ============================================
# Root endpoint
# ============================================

@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs" if settings.debug else None,
    }
