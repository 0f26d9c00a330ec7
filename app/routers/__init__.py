# app/routers/__init__.py

from app.routers import health
from app.routers import invoices
from app.routers import charges

__all__ = ["health", "invoices", "charges"]
