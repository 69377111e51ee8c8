"""Spam decision engine integration helpers exposed to the application."""

from formguard.spam.api import router
from formguard.spam.domain.container import configure, configure_postgres

__all__ = ["router", "configure", "configure_postgres"]
