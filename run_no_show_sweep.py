"""
No-show sweep runner
Run this from cron every few minutes: python run_no_show_sweep.py
"""

import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

from clinic_queue.database import SessionLocal
from clinic_queue.services.no_show import cancel_no_shows

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info("🚀 Starting no-show sweep...")
    db = SessionLocal()
    try:
        summary = cancel_no_shows(db)
        logger.info(f"✅ No-show sweep finished: {summary}")
    except Exception as e:
        logger.error(f"❌ No-show sweep failed: {e}")
        sys.exit(1)
    finally:
        db.close()
