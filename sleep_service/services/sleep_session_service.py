"""
Sleep Session Service
Session persistence, the recent-session window used by the analysis pipeline,
and pattern upserts.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.future import select
from sqlalchemy import func, case, delete
from datetime import date, datetime, timedelta
from typing import List, Dict, Any, Optional
import math

from sleep_service.models.sleep_session import SleepSession
from sleep_service.models.sleep_pattern import SleepPattern
from sleep_service.schemas.sleep_schemas import SleepSessionCreate, SleepSessionUpdate
from sleep_service.exceptions.errors import PersistenceFailure, SessionDateConflict, UpstreamFetchFailure
from sleep_service.core.logger import get_logger

logger = get_logger("sleep_session_service")


QUALITY_FILTERS = {
    'poor': (None, 3),
    'fair': (4, 6),
    'good': (7, 8),
    'excellent': (9, None),
}

DURATION_FILTERS = {
    'insufficient': (None, 359),
    'short': (360, 419),
    'normal': (420, 540),
    'long': (541, None),
}

# Assumed when only bedtime and wake time are known
ESTIMATED_SLEEP_LATENCY_MIN = 15
ESTIMATED_SLEEP_EFFICIENCY = 0.85


def _minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def calculate_sleep_metrics(
    bedtime: Optional[datetime],
    sleep_onset: Optional[datetime],
    wake_time: Optional[datetime],
) -> Dict[str, Any]:
    """Derive duration, latency and efficiency from the timing fields."""
    metrics: Dict[str, Any] = {
        'total_sleep_duration': None,
        'sleep_latency': None,
        'sleep_efficiency': None,
    }

    if sleep_onset and wake_time:
        metrics['total_sleep_duration'] = round(_minutes_between(sleep_onset, wake_time))
    elif bedtime and wake_time:
        time_in_bed = _minutes_between(bedtime, wake_time)
        metrics['total_sleep_duration'] = round((time_in_bed - ESTIMATED_SLEEP_LATENCY_MIN) * ESTIMATED_SLEEP_EFFICIENCY)

    if bedtime and sleep_onset:
        metrics['sleep_latency'] = round(_minutes_between(bedtime, sleep_onset))

    if bedtime and wake_time and metrics['total_sleep_duration']:
        time_in_bed = _minutes_between(bedtime, wake_time)
        if time_in_bed > 0:
            metrics['sleep_efficiency'] = round(metrics['total_sleep_duration'] / time_in_bed * 100, 2)

    return metrics


class SleepSessionService:
    """Service for reading and writing sleep sessions and detected patterns"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Session window provider
    # ------------------------------------------------------------------

    async def get_recent_sessions(
        self,
        user_id: str,
        days: int,
        today: Optional[date] = None
    ) -> List[SleepSession]:
        """Sessions dated within the last `days` days, newest first."""
        today = today or datetime.utcnow().date()
        since = today - timedelta(days=days)
        stmt = select(SleepSession).where(
            SleepSession.user_id == user_id,
            SleepSession.session_date >= since
        ).order_by(SleepSession.session_date.desc())

        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise UpstreamFetchFailure(f"Could not load {days}-day window for user {user_id}: {e}") from e
        return list(result.scalars().all())

    async def get_session_by_date(self, user_id: str, session_date: date) -> Optional[SleepSession]:
        result = await self.db.execute(
            select(SleepSession).where(
                SleepSession.user_id == user_id,
                SleepSession.session_date == session_date
            )
        )
        return result.scalar_one_or_none()

    async def get_session_by_id(self, user_id: str, session_id: str) -> Optional[SleepSession]:
        result = await self.db.execute(
            select(SleepSession).where(
                SleepSession.id == session_id,
                SleepSession.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Session writes
    # ------------------------------------------------------------------

    async def create_session(self, user_id: str, data: SleepSessionCreate) -> SleepSession:
        """Create a session, or overwrite the one already logged for that date."""
        fields = data.model_dump()
        if fields.get('room_temperature') is not None:
            fields['room_temperature'] = fields['room_temperature'].value
        for flag in ('caffeine_after_2pm', 'alcohol_consumed', 'exercise_day'):
            fields[flag] = bool(fields.get(flag))

        metrics = calculate_sleep_metrics(data.bedtime, data.sleep_onset, data.wake_time)

        session = await self.get_session_by_date(user_id, data.session_date)
        if session is None:
            session = SleepSession(
                user_id=user_id,
                wake_episodes=0,
                data_source="manual",
                confidence_score=1.0
            )
            self.db.add(session)
            logger.info(f"Creating sleep session for user {user_id} on {data.session_date}")
        else:
            logger.info(f"Overwriting sleep session {session.id} for user {user_id} on {data.session_date}")

        for key, value in {**fields, **metrics}.items():
            setattr(session, key, value)

        await self.db.commit()
        await self.db.refresh(session)
        return session

    async def update_session(
        self,
        user_id: str,
        session_id: str,
        data: SleepSessionUpdate
    ) -> Optional[SleepSession]:
        """Merge the provided fields into an existing session and recompute metrics."""
        session = await self.get_session_by_id(user_id, session_id)
        if not session:
            return None

        updates = data.model_dump(exclude_unset=True)
        if updates.get('session_date') is None:
            updates.pop('session_date', None)
        if updates.get('room_temperature') is not None:
            updates['room_temperature'] = updates['room_temperature'].value
        for key, value in updates.items():
            setattr(session, key, value)

        metrics = calculate_sleep_metrics(session.bedtime, session.sleep_onset, session.wake_time)
        for key, value in metrics.items():
            setattr(session, key, value)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Sleep session {session_id} clashes with another session on {updates.get('session_date')}: {e}")
            raise SessionDateConflict(updates.get('session_date')) from e
        await self.db.refresh(session)
        logger.info(f"Updated sleep session {session_id} for user {user_id}")
        return session

    async def delete_session(self, user_id: str, session_id: str) -> bool:
        result = await self.db.execute(
            delete(SleepSession).where(
                SleepSession.id == session_id,
                SleepSession.user_id == user_id
            )
        )
        await self.db.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Listing and summaries
    # ------------------------------------------------------------------

    async def get_sessions(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        quality_filter: Optional[str] = None,
        duration_filter: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Dict[str, Any]:
        limit = min(limit, 100)
        conditions = [SleepSession.user_id == user_id]

        if start_date:
            conditions.append(SleepSession.session_date >= start_date)
        if end_date:
            conditions.append(SleepSession.session_date <= end_date)
        if quality_filter:
            low, high = QUALITY_FILTERS[quality_filter]
            if low is not None:
                conditions.append(SleepSession.quality_score >= low)
            if high is not None:
                conditions.append(SleepSession.quality_score <= high)
        if duration_filter:
            low, high = DURATION_FILTERS[duration_filter]
            if low is not None:
                conditions.append(SleepSession.total_sleep_duration >= low)
            if high is not None:
                conditions.append(SleepSession.total_sleep_duration <= high)

        total = (await self.db.execute(
            select(func.count()).select_from(SleepSession).where(*conditions)
        )).scalar_one()

        result = await self.db.execute(
            select(SleepSession)
            .where(*conditions)
            .order_by(SleepSession.session_date.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )

        return {
            'sessions': list(result.scalars().all()),
            'page': page,
            'limit': limit,
            'total': total,
            'total_pages': math.ceil(total / limit) if limit else 0,
        }

    async def get_recent_summary(self, user_id: str, days: int = 7) -> Dict[str, Any]:
        today = datetime.utcnow().date()
        since = today - timedelta(days=days)

        stmt = select(
            func.count(SleepSession.id).label('total_sessions'),
            func.avg(SleepSession.total_sleep_duration).label('avg_duration'),
            func.avg(SleepSession.quality_score).label('avg_quality'),
            func.avg(SleepSession.sleep_efficiency).label('avg_efficiency'),
            func.avg(SleepSession.energy_level).label('avg_energy'),
            func.min(SleepSession.total_sleep_duration).label('min_duration'),
            func.max(SleepSession.total_sleep_duration).label('max_duration'),
            func.sum(case((SleepSession.quality_score <= 3, 1), else_=0)).label('poor_sleep_days'),
            func.sum(case((SleepSession.total_sleep_duration < 360, 1), else_=0)).label('insufficient_sleep_days'),
        ).where(
            SleepSession.user_id == user_id,
            SleepSession.session_date >= since,
            SleepSession.session_date <= today
        )
        row = (await self.db.execute(stmt)).first()
        total_sessions = row.total_sessions or 0

        return {
            'period': f"{days} days",
            'total_sessions': total_sessions,
            'average_duration': round(float(row.avg_duration)) if row.avg_duration is not None else None,
            'average_quality': round(float(row.avg_quality), 1) if row.avg_quality is not None else None,
            'average_efficiency': round(float(row.avg_efficiency), 1) if row.avg_efficiency is not None else None,
            'average_energy': round(float(row.avg_energy), 1) if row.avg_energy is not None else None,
            'min_duration': row.min_duration,
            'max_duration': row.max_duration,
            'poor_sleep_days': row.poor_sleep_days or 0,
            'insufficient_sleep_days': row.insufficient_sleep_days or 0,
            'completion_rate': round(total_sessions / days * 100, 1) if days > 0 else 0.0,
        }

    # ------------------------------------------------------------------
    # Patterns
    # ------------------------------------------------------------------

    async def upsert_pattern(
        self,
        user_id: str,
        pattern_type: str,
        detection_date: date,
        fields: Dict[str, Any]
    ) -> SleepPattern:
        """Insert or overwrite the pattern row for (user, type, detection date)."""
        try:
            result = await self.db.execute(
                select(SleepPattern).where(
                    SleepPattern.user_id == user_id,
                    SleepPattern.pattern_type == pattern_type,
                    SleepPattern.detection_date == detection_date
                )
            )
            pattern = result.scalar_one_or_none()

            if pattern is None:
                pattern = SleepPattern(
                    user_id=user_id,
                    pattern_type=pattern_type,
                    detection_date=detection_date
                )
                self.db.add(pattern)

            for key, value in fields.items():
                setattr(pattern, key, value)

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceFailure(f"Could not upsert {pattern_type} pattern for user {user_id}: {e}") from e

        return pattern

    async def get_patterns(
        self,
        user_id: str,
        detection_date: Optional[date] = None,
        pattern_type: Optional[str] = None
    ) -> List[SleepPattern]:
        stmt = select(SleepPattern).where(SleepPattern.user_id == user_id)
        if detection_date:
            stmt = stmt.where(SleepPattern.detection_date == detection_date)
        if pattern_type:
            stmt = stmt.where(SleepPattern.pattern_type == pattern_type)
        stmt = stmt.order_by(SleepPattern.detection_date.desc(), SleepPattern.pattern_type)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())
