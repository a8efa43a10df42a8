import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.database.models import EscalationHistory, RedFlagInstance, RedFlagPattern
from coordinator.repositories.base_repository import BaseRepository
from coordinator.schemas.enums import ACTIVE_RED_FLAG_STATUSES, SEVERITY_RANK

_SEVERITY_ORDER = case(SEVERITY_RANK, value=RedFlagInstance.severity, else_=len(SEVERITY_RANK))


class RedFlagPatternRepository(BaseRepository[RedFlagPattern]):
    """Repository for red-flag patterns."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, RedFlagPattern)

    async def get_by_name(self, name: str) -> Optional[RedFlagPattern]:
        query = select(RedFlagPattern).where(RedFlagPattern.name == name)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_active(self) -> List[RedFlagPattern]:
        query = (
            select(RedFlagPattern)
            .where(RedFlagPattern.active.is_(True))
            .order_by(RedFlagPattern.name)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())


class RedFlagInstanceRepository(BaseRepository[RedFlagInstance]):
    """Repository for detected red flags."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, RedFlagInstance)

    async def list_for_case(
        self,
        case_id: uuid.UUID,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        overdue_only: bool = False,
    ) -> List[RedFlagInstance]:
        """Flags of a case, most severe first, newest first within a severity."""
        query = select(RedFlagInstance).where(RedFlagInstance.case_id == case_id)
        if status is not None:
            query = query.where(RedFlagInstance.status == status)
        if severity is not None:
            query = query.where(RedFlagInstance.severity == severity)
        if overdue_only:
            query = query.where(RedFlagInstance.is_overdue.is_(True))
        query = query.order_by(_SEVERITY_ORDER, RedFlagInstance.detected_at.desc())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_newly_overdue(self, now: datetime) -> List[RedFlagInstance]:
        """Active flags past their SLA deadline that are not yet marked overdue."""
        query = (
            select(RedFlagInstance)
            .where(
                RedFlagInstance.status.in_(ACTIVE_RED_FLAG_STATUSES),
                RedFlagInstance.sla_deadline < now,
                RedFlagInstance.is_overdue.is_(False),
            )
            .order_by(RedFlagInstance.sla_deadline.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_overdue_active(self) -> List[RedFlagInstance]:
        """Active flags already marked overdue; candidates for the next chain level."""
        query = (
            select(RedFlagInstance)
            .where(
                RedFlagInstance.status.in_(ACTIVE_RED_FLAG_STATUSES),
                RedFlagInstance.is_overdue.is_(True),
            )
            .order_by(RedFlagInstance.sla_deadline.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def mark_overdue(self, flag_id: uuid.UUID, now: datetime) -> bool:
        """Set the overdue marker once; False if another sweep got there first."""
        try:
            statement = (
                update(RedFlagInstance)
                .where(
                    RedFlagInstance.id == flag_id,
                    RedFlagInstance.status.in_(ACTIVE_RED_FLAG_STATUSES),
                    RedFlagInstance.is_overdue.is_(False),
                )
                .values(is_overdue=True, updated_at=now)
            )
            result = await self.session.execute(statement)
            await self.session.commit()
            return result.rowcount == 1
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(f"Error marking red flag {flag_id} overdue: {str(e)}", exc_info=True)
            raise

    async def advance_level(
        self, flag_id: uuid.UUID, from_level: int, to_level: int, now: datetime
    ) -> bool:
        """Move an active flag between chain levels if it is still at ``from_level``."""
        try:
            statement = (
                update(RedFlagInstance)
                .where(
                    RedFlagInstance.id == flag_id,
                    RedFlagInstance.status.in_(ACTIVE_RED_FLAG_STATUSES),
                    RedFlagInstance.escalation_level == from_level,
                )
                .values(escalation_level=to_level, last_escalated_at=now, updated_at=now)
            )
            result = await self.session.execute(statement)
            await self.session.commit()
            return result.rowcount == 1
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(f"Error escalating red flag {flag_id}: {str(e)}", exc_info=True)
            raise


class EscalationHistoryRepository(BaseRepository[EscalationHistory]):
    """Append-only escalation log."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, EscalationHistory)

    async def list_for_flag(self, red_flag_id: uuid.UUID) -> List[EscalationHistory]:
        query = (
            select(EscalationHistory)
            .where(EscalationHistory.red_flag_id == red_flag_id)
            .order_by(EscalationHistory.created_at.asc(), EscalationHistory.escalation_level.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
