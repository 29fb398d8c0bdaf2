"""Database clients and connections.

Imports are intentionally NOT eagerly loaded here so that importing a model
does not open a Redis connection pool.
Use explicit imports: ``from app.db.redis import RedisClient``, etc.
"""
