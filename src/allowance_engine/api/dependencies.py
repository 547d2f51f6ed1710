"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from allowance_engine.clock import Clock, SystemClock
from allowance_engine.config import Settings, get_settings
from allowance_engine.database import init_db
from allowance_engine.exceptions import AuthorizationError
from allowance_engine.services.engine import AllowanceEngine
from allowance_engine.services.orchestrator import TriggerOrchestrator
from allowance_engine.services.readers import RoleResolver


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the process-wide session factory."""
    _, factory = init_db()
    return factory


def get_clock() -> Clock:
    return SystemClock()


def get_app_settings() -> Settings:
    return get_settings()


SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


async def get_db_session(factory: SessionFactory) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_allowance_engine(
    factory: SessionFactory,
    clock: Annotated[Clock, Depends(get_clock)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> AllowanceEngine:
    return AllowanceEngine(factory, clock=clock, settings=settings)


def get_orchestrator(
    engine: Annotated[AllowanceEngine, Depends(get_allowance_engine)],
) -> TriggerOrchestrator:
    return TriggerOrchestrator(engine)


async def get_caller_id(x_caller_id: Annotated[str | None, Header()] = None) -> str | None:
    """Extract the caller identity from header (authentication happens upstream)."""
    return x_caller_id.strip() if x_caller_id and x_caller_id.strip() else None


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Engine = Annotated[AllowanceEngine, Depends(get_allowance_engine)]
Orchestrator = Annotated[TriggerOrchestrator, Depends(get_orchestrator)]
CallerId = Annotated[str | None, Depends(get_caller_id)]


async def get_caller_roles(db: DbSession, caller_id: CallerId) -> set[str]:
    """Roles of the calling user; raises when the caller is anonymous."""
    if caller_id is None:
        raise AuthorizationError("", "Login required.")
    return await RoleResolver(db).resolve_caller_roles(caller_id)


CallerRoles = Annotated[set[str], Depends(get_caller_roles)]
