"""FastAPI dependency injection functions.

The settings, the identity manager and the database session manager are
created when the application is built and kept on ``app.state``; these
dependencies hand them to route handlers.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from idm.config import AppSettings
from idm.services.identity import IdentityManager


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session, to be used as a dependency."""
    async for session in request.app.state.database_session_manager.session():
        yield session


def get_app_settings(request: Request) -> AppSettings:
    """Dependency for getting the settings the application was built with."""
    return request.app.state.settings


def get_identity_manager(request: Request) -> IdentityManager:
    """Dependency for getting the identity manager."""
    return request.app.state.identity


# Annotated dependency types
SessionDep = Annotated[AsyncSession, Depends(get_db)]
SettingsDep = Annotated[AppSettings, Depends(get_app_settings)]
IdentityDep = Annotated[IdentityManager, Depends(get_identity_manager)]
