"""Authentication and authorization.

Users log in with email/password and receive JWT access/refresh tokens.
Every protected route resolves the bearer token to a User row; admin-only
routes additionally depend on require_admin.
"""
