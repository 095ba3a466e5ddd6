import asyncio

from sqlalchemy import func, select

from dropiq.core import database
from dropiq.core.seed import ACHIEVEMENT_CATALOG, SAMPLE_AIRDROPS, seed_achievements, seed_sample_airdrops
from dropiq.models.database import Achievement, Airdrop


def test_seeding_is_idempotent():
    async def scenario():
        await database.start_db()
        try:
            await database.init_db()
            async with database.SessionLocal() as session:
                first = (await seed_achievements(session), await seed_sample_airdrops(session))
                second = (await seed_achievements(session), await seed_sample_airdrops(session))
                achievements = (await session.execute(select(func.count(Achievement.id)))).scalar_one()
                approved = (await session.execute(
                    select(func.count(Airdrop.id)).where(Airdrop.status == "approved")
                )).scalar_one()
            return first, second, achievements, approved
        finally:
            await database.shutdown_db()

    first, second, achievements, approved = asyncio.run(scenario())
    assert first == (len(ACHIEVEMENT_CATALOG), len(SAMPLE_AIRDROPS))
    assert second == (0, 0)
    assert achievements == len(ACHIEVEMENT_CATALOG)
    assert approved == len(SAMPLE_AIRDROPS)
