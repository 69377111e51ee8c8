"""HTTP routers for the spam decision engine."""

from formguard.spam.api.evaluate import router

__all__ = ["router"]
