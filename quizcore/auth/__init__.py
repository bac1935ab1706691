"""
Authentication service for Quiz-Core.

This package provides:
- User registration with password policy and uniqueness checks
- JWT access token issue and validation
- Refresh tokens for the SPA client
- Role-based access control from token claims
"""
