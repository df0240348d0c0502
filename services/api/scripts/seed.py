"""Seed script: populates dev DB with a sample user's week of calendar events."""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from brain_calendar.config import get_settings
from brain_calendar.models.calendar_event import CalendarEvent

SEED_USER_ID = "user_seed_dev"
SEED_PROVIDER = "seed"


def _ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


async def seed():
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async with session_factory() as db:
        result = await db.execute(
            select(CalendarEvent.id).where(
                CalendarEvent.user_id == SEED_USER_ID,
                CalendarEvent.provider == SEED_PROVIDER,
            )
        )
        if result.first() is not None:
            print(f"Seed events for {SEED_USER_ID} already exist, skipping.")
            await engine.dispose()
            return

        tomorrow = (datetime.now(timezone.utc) + timedelta(days=1)).replace(hour=9, minute=0, second=0, microsecond=0)

        samples = [
            # (title, start offset hours, duration minutes, lock state)
            ("Team standup", 0, 30, "locked"),
            ("Focus block", 1, 120, "flexible"),
            ("1:1 with manager", 4, 30, "negotiable"),
            ("Dentist", 7, 60, "sensitive"),
        ]
        for i, (title, offset_h, minutes, lock_state) in enumerate(samples):
            start = tomorrow + timedelta(hours=offset_h)
            policy = {"lock_state": lock_state, "move_permissions": "userOnly", "content_sharing": "minimal"}
            if lock_state == "negotiable":
                policy["approver"] = {"name": "Manager", "email": "manager@example.com"}
            db.add(
                CalendarEvent(
                    user_id=SEED_USER_ID,
                    provider=SEED_PROVIDER,
                    provider_event_id=f"seed_evt_{i + 1:03d}",
                    title=title,
                    start_at=_ms(start),
                    end_at=_ms(start + timedelta(minutes=minutes)),
                    timezone="UTC",
                    policy=policy,
                    attendees=[],
                    visibility="private",
                )
            )

        await db.commit()
        print(f"Seeded: user={SEED_USER_ID}, {len(samples)} calendar events")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
