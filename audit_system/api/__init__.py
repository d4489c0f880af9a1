"""HTTP trigger surface."""

from audit_system.api.server import create_app

__all__ = ["create_app"]
