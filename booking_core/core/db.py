from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from .config import settings
from .base import Base

engine = create_async_engine(settings.POSTGRES_DSN, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def init_models():
    ## In dev-only "create_all" mode, keep old behavior; otherwise, migrations own the schema.
    if settings.STORE_PROVIDER != "sql":
        return
    if settings.DB_MANAGE.lower() == "create_all":
        # make sure every table is registered on the metadata
        from booking_core.modules.providers import models as _providers  # noqa: F401
        from booking_core.modules.availability import models as _availability  # noqa: F401
        from booking_core.modules.bookings import models as _bookings  # noqa: F401
        from booking_core.modules.slots import models as _slots  # noqa: F401
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
