"""
Rewards backend API package.

Modules:
- config: environment settings (pydantic-settings)
- db: PostgreSQL connection pooling + query helpers
- auth_utils: password hashing and JWT helpers
- auth_service: registration, login and token verification
- repositories: users and settings tables
- schemas: Pydantic models for the REST API
- main: FastAPI application factory and routes
"""
