import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from safescan.config import settings
from safescan.models import init_db

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info(f"Creating database tables at {settings.database_url}...")
    init_db()
    logger.info("Database tables created successfully")
