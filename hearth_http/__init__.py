"""hearth_http - Flask admin endpoints of the Hearth bridge."""

from .admin import admin_bp, create_app

__all__ = ["admin_bp", "create_app"]
