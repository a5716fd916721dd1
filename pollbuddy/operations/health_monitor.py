# pollbuddy/operations/health_monitor.py

# Liveness and readiness checks: database, disk, clock.

import logging
import shutil
from typing import Dict

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pollbuddy import db
from pollbuddy.operations.time_sync import check_clock_drift

logger = logging.getLogger(__name__)


def check_db() -> Dict:
    try:
        db.session.execute(text("SELECT 1"))
        return {"ok": True, "detail": "database reachable"}
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database health check failed: {e}")
        return {"ok": False, "error": str(e)}


def check_disk(path=".", min_free_gb=1.0) -> Dict:
    total, used, free = shutil.disk_usage(path)
    free_gb = free / (1024 ** 3)
    return {"ok": free_gb >= min_free_gb, "free_gb": round(free_gb, 2), "min_required_gb": min_free_gb}


def check_ready(config) -> Dict:
    """Readiness: database and disk only, no external calls."""
    database = check_db()
    disk = check_disk(config.get('AUDIT_LOG_DIR', '.'), config.get('MIN_FREE_DISK_GB', 1.0))
    return {"db": database, "disk": disk, "overall_ok": database["ok"] and disk["ok"]}


def check_health(config, drift_check=check_clock_drift) -> Dict:
    """Aggregate overall system health."""
    result = check_ready(config)
    clock = drift_check(config.get('NTP_SERVERS'), config.get('MAX_TIME_OFFSET_S', 0.5))
    result["time"] = clock
    result["overall_ok"] = result["overall_ok"] and clock["overall_ok"]
    return result
