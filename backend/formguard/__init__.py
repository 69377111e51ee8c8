"""formguard: spam decision engine for web form submissions."""

__version__ = "0.1.0"
