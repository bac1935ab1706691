"""
Authentication middleware.

This module provides FastAPI dependencies for:
- Access to the configured authentication services
- User validation from JWT bearer tokens
- Role-based access control from token claims
"""
from typing import List
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from quizcore.auth.errors import TokenValidationError
from quizcore.auth.jwt import TokenIssuer, TokenValidator
from quizcore.auth.schemas import TokenClaims
from quizcore.auth.settings import AuthSettings
from quizcore.auth.store import CredentialStore
from quizcore.auth.tokens import TokenService
from quizcore.auth.users import RegistrationService

# OAuth2 scheme for JWT tokens
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token")


class AuthServices:
    """
    The authentication services of one application instance, wired to the
    same settings and credential store.
    """

    def __init__(self, settings: AuthSettings, store: CredentialStore):
        self.settings = settings
        self.store = store
        self.issuer = TokenIssuer(settings)
        self.validator = TokenValidator(settings)
        self.registration = RegistrationService(store, settings)
        self.tokens = TokenService(store, self.issuer, settings)


def get_auth_services(request: Request) -> AuthServices:
    """Dependency returning the services attached to the running app."""
    services = getattr(request.app.state, "auth", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service is not initialised",
        )
    return services


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    services: AuthServices = Depends(get_auth_services),
) -> TokenClaims:
    """
    FastAPI dependency to get the current authenticated user from token.

    Raises:
        HTTPException: 401 naming the failed check
    """
    try:
        return services.validator.validate_token(token)
    except TokenValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": e.kind.value, "message": str(e)},
            headers={"WWW-Authenticate": f'Bearer error="invalid_token", error_description="{e.kind.value}"'},
        )


class RBACMiddleware:
    """
    Role-Based Access Control.

    Creates FastAPI dependencies for protecting routes by the role claims
    of the bearer token.
    """

    @staticmethod
    def has_roles(roles: List[str]):
        """
        Dependency to check if the user has any of the specified roles.

        Args:
            roles: List of required role names (any match is sufficient)
        """
        async def verify_roles(claims: TokenClaims = Depends(get_current_user)) -> TokenClaims:
            if not any(claims.has_role(role) for role in roles):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Role required: {', '.join(roles)}",
                )
            return claims

        return verify_roles
