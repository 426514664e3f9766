from loguru import logger

from caddate.core.db import Base, engine

# table definitions attach to Base on import
from caddate.models import location, user  # noqa: F401


def init_db(bind=None) -> None:
    """Create the users and user_locations tables on `bind` (default engine) if missing."""
    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Schema ready | tables={sorted(Base.metadata.tables)}")
