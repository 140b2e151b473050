"""
FastAPI REST API for the Library Management catalog.

This package provides:
- Book catalog CRUD over a MongoDB collection
- GitHub OAuth login with server-side sessions
- Swagger UI documentation
"""
