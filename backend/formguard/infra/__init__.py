"""Infrastructure adapters (Redis, Postgres, rate limiting)."""
