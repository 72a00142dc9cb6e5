"""Infrastructure layer — SQLite database and execution repositories.

This layer depends on stdlib, SQLAlchemy, and the domain layer (the
repositories map rows onto domain records). It must never import from
services, commands, or output.
"""
