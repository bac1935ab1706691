"""
Authentication router.

This module provides FastAPI router for authentication endpoints:
- User registration
- Token issue (password and refresh_token grants)
- Current user profile
"""
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, FastAPI, Form, HTTPException, status
from quizcore.base_service import AsyncSessionLocal, Base, BaseService, engine, utcnow
from quizcore.auth.errors import AuthenticationError, RegistrationError, RegistrationErrorKind
from quizcore.auth.middleware import AuthServices, RBACMiddleware, get_auth_services, get_current_user
from quizcore.auth.schemas import TokenClaims
from quizcore.auth.settings import AuthSettings
from quizcore.auth.store import ADMINISTRATOR, DEFAULT_ROLES, SqlAlchemyCredentialStore
from quizcore.auth.tokens import DEFAULT_CLIENT_ID
from quizcore.auth.users import UserCreate

# Create router
router = APIRouter(tags=["auth"])

# Create service instance
base_service = BaseService("auth")

REGISTRATION_STATUS = {
    RegistrationErrorKind.DUPLICATE_USERNAME: status.HTTP_409_CONFLICT,
    RegistrationErrorKind.DUPLICATE_EMAIL: status.HTTP_409_CONFLICT,
    RegistrationErrorKind.WEAK_PASSWORD: status.HTTP_400_BAD_REQUEST,
    RegistrationErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    RegistrationErrorKind.UNKNOWN_ROLE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    RegistrationErrorKind.STORAGE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def start_auth_service(app: FastAPI, settings: Optional[AuthSettings] = None):
    """Create tables, seed roles and attach the auth services to the app."""
    base_service.log_event("service.startup", {"service": "auth"})
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        store = SqlAlchemyCredentialStore(AsyncSessionLocal)
        await store.ensure_roles(DEFAULT_ROLES)
        app.state.auth = AuthServices(settings or AuthSettings.from_env(), store)
        base_service.logger.info("Initialized roles and token settings")
    except Exception as e:
        base_service.log_error(e, context="Auth service startup")
        raise


def _registration_exception(error: RegistrationError) -> HTTPException:
    status_code = REGISTRATION_STATUS[error.kind]
    if error.kind == RegistrationErrorKind.STORAGE and error.transient:
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HTTPException(
        status_code=status_code,
        detail={
            "error": error.kind.value,
            "message": str(error),
            "violations": error.violations,
        },
    )


@router.get("/ping")
async def ping():
    return base_service.response(
        data={"timestamp": utcnow().isoformat()},
        message="Auth service is alive",
    )


@router.post("/register")
@router.put("/user")
async def register_user(
    user_data: UserCreate,
    services: AuthServices = Depends(get_auth_services),
) -> Dict[str, Any]:
    """
    Register a new user with the RegisteredUser role and log them in.

    Args:
        user_data: User registration data

    Returns:
        Dict with user information and token
    """
    try:
        identity = await services.registration.register(
            user_data.username,
            user_data.email,
            user_data.password,
            display_name=user_data.display_name,
        )
    except RegistrationError as e:
        base_service.log_event("user.register.rejected", {
            "username": user_data.username,
            "reason": e.kind.value,
        })
        raise _registration_exception(e)
    except Exception as e:
        base_service.log_error(e, context="User registration")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed"
        )

    base_service.log_event("user.registered", {
        "id": identity.id,
        "username": identity.username,
    })

    # The account is committed; a token failure must not hide it
    message = "User registered successfully"
    try:
        tokens = (await services.tokens.issue_for(identity)).model_dump(mode="json")
    except Exception as e:
        base_service.log_error(e, context="Token issue after registration")
        tokens = None
        message = "User registered; sign in to obtain a token"

    return base_service.response(
        data={
            "user": identity.model_dump(mode="json"),
            "token": tokens,
        },
        message=message,
    )


@router.post("/token")
async def token(
    grant_type: str = Form(...),
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    refresh_token: Optional[str] = Form(None),
    client_id: str = Form(DEFAULT_CLIENT_ID),
    services: AuthServices = Depends(get_auth_services),
) -> Dict[str, Any]:
    """
    Issue a token pair.

    Supports the ``password`` grant (username + password) and the
    ``refresh_token`` grant (a refresh token from an earlier response).
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Incorrect username or password",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        if grant_type == "password":
            if not username or password is None:
                raise credentials_exception
            identity = await services.registration.authenticate(username, password)
            tokens = await services.tokens.issue_for(identity, client_id)
            base_service.log_event("user.login", {"id": identity.id, "username": identity.username})
        elif grant_type == "refresh_token":
            if not refresh_token:
                raise credentials_exception
            tokens = await services.tokens.refresh(refresh_token, client_id)
            base_service.log_event("token.refreshed", {"client_id": client_id})
        else:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unsupported grant type: {grant_type}",
            )
    except AuthenticationError as e:
        base_service.log_event("user.login.failed", {
            "grant_type": grant_type,
            "username": username,
            "reason": str(e),
        })
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    except HTTPException:
        # Re-raise FastAPI exceptions
        raise
    except Exception as e:
        base_service.log_error(e, context="Token issue")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Token issue failed"
        )

    return base_service.response(data=tokens.model_dump(mode="json"), message="Token issued successfully")


async def _load_user(services: AuthServices, user_id: str) -> Dict[str, Any]:
    try:
        record = await services.store.find_by_id(user_id)
    except Exception as e:
        base_service.log_error(e, context="Get user")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get user information"
        )
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return record.public().model_dump(mode="json")


@router.get("/me")
async def get_current_user_info(
    claims: TokenClaims = Depends(get_current_user),
    services: AuthServices = Depends(get_auth_services),
) -> Dict[str, Any]:
    """
    Get information about the current authenticated user.
    """
    user = await _load_user(services, claims.sub)
    return base_service.response(data=user, message="User information retrieved successfully")


@router.get("/users/{user_id}")
async def get_user(
    user_id: str,
    claims: TokenClaims = Depends(RBACMiddleware.has_roles([ADMINISTRATOR])),
    services: AuthServices = Depends(get_auth_services),
) -> Dict[str, Any]:
    """
    Get any user's information. Administrators only.
    """
    user = await _load_user(services, user_id)
    return base_service.response(data=user, message="User information retrieved successfully")
