"""Shared API dependencies for relay authentication and runtime access."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from gecko_mint.core.settings import Settings
from gecko_mint.services.issuance import IssuanceOrchestrator

# HTTP Bearer scheme for relay tokens; optional so that auth can be disabled.
bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    """Return the settings the application was created with."""
    return request.app.state.settings


def get_orchestrator(request: Request) -> IssuanceOrchestrator:
    """Return the running issuance orchestrator.

    Raises:
        HTTPException: If the service has not finished starting up.
    """
    orchestrator: IssuanceOrchestrator | None = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Issuance pipeline is not running",
        )
    return orchestrator


SettingsDep = Annotated[Settings, Depends(get_settings)]
OrchestratorDep = Annotated[IssuanceOrchestrator, Depends(get_orchestrator)]


def verify_relay_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    settings: SettingsDep,
) -> None:
    """Check the relay's bearer token when a shared secret is configured.

    Raises:
        HTTPException: If the token is missing, expired or signed with another secret.
    """
    if settings.event_shared_secret is None:
        return

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing relay token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        jwt.decode(
            credentials.credentials,
            settings.event_shared_secret.get_secret_value(),
            algorithms=[settings.event_jwt_algorithm],
            audience=settings.event_audience,
        )
    except JWTError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate relay token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from err


RelayAuthDep = Depends(verify_relay_token)
