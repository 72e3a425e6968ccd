import asyncio
import logging

from rcms.database import engine, Base

# Import all models to ensure they are registered in Base.metadata
from rcms.cases.models import ActiveCase, CaseRecord
from rcms.audit.models import AuditEvent
from rcms.careplans.models import CarePlan

logger = logging.getLogger(__name__)


async def init_models():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(init_models())
