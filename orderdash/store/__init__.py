"""Record stores for orders: in-memory, Convex HTTP API and PostgreSQL."""
