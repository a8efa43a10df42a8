from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.core.collaborators import CaseAccessRoleResolver, CollaboratorGateway
from coordinator.core.events import EventChannel, event_channel
from coordinator.core.exceptions import AppError, DatabaseError
from coordinator.schemas.events import CoordinationEvent, EventKind
from coordinator.utils.logging import get_logger
from coordinator.utils.time import Clock, utc_now

LOGGER = get_logger(__name__)


class BaseService:
    """Base class for coordination services.

    Provides a standardized execution flow with error translation, plus the
    collaborators every service shares: the session its repositories use,
    the collaborator gateway, the event channel and the clock.
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: Optional[CollaboratorGateway] = None,
        events: Optional[EventChannel] = None,
        clock: Clock = utc_now,
    ):
        """Initialize the service.

        Args:
            session: Async database session for repository access
            gateway: Role, notification and audit collaborators; defaults to
                case_access role resolution with logging sinks
            events: Channel for live observers
            clock: Source of the current time
        """
        self.session = session
        self.gateway = gateway or CollaboratorGateway(CaseAccessRoleResolver(session))
        self.events = events or event_channel
        self.clock = clock
        self.logger = LOGGER

    async def execute(self, operation: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run one service operation.

        Application errors propagate unchanged; database failures become
        DatabaseError and anything else AppError.
        """
        try:
            return await operation(*args, **kwargs)

        except AppError:
            raise

        except SQLAlchemyError as e:
            self.logger.error(
                f"Database failure in {operation.__name__}: {str(e)}",
                exc_info=True,
                extra={"service": self.__class__.__name__},
            )
            raise DatabaseError(f"Database operation failed: {str(e)}", original_error=e)

        except Exception as e:
            self.logger.error(
                f"Service execution failed: {str(e)}",
                exc_info=True,
                extra={"service": self.__class__.__name__},
            )
            raise AppError(f"Service execution failed: {str(e)}", original_error=e)

    def emit(self, kind: EventKind, case_id: Optional[UUID], **payload: Any) -> None:
        """Publish a best-effort event for live observers."""
        self.events.publish(
            CoordinationEvent(kind=kind, case_id=case_id, occurred_at=self.clock(), payload=payload)
        )
