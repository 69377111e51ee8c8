"""Redis and PostgreSQL stores for the spam engine."""
