"""Create the linkprofile / customdomain tables (dev bootstrap; production uses alembic)."""
import logging
from app.db.base_class import Base
from app.db.session import db_registry
# Register models with Base.metadata
import app.models  # noqa: F401

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def create_tables():
    logger.info("Creating tables on %s", db_registry.engine.url.render_as_string(hide_password=True))
    Base.metadata.create_all(bind=db_registry.engine)
    logger.info("Tables created: %s", ", ".join(sorted(Base.metadata.tables)))

if __name__ == "__main__":
    create_tables()
