# app/integrations/__init__.py

from app.integrations import rates

__all__ = ["rates"]
