# pollbuddy/operations/time_sync.py

# Clock drift check against NTP servers. The voting window and code expiry
# are judged by the server clock, so drift is reported by /health.

import logging
from datetime import datetime, timezone
from typing import Dict, List

import ntplib

logger = logging.getLogger(__name__)

NTP_SERVERS = [
    "pool.ntp.org",
    "time.google.com",
]

MAX_ALLOWED_OFFSET = 0.5


def check_clock_drift(servers=None, max_offset=MAX_ALLOWED_OFFSET, client_factory=ntplib.NTPClient) -> Dict:
    """
    Query each NTP server and compare its clock with ours.
    Returns:
        A dictionary with per-server offsets, the average offset and
        whether it lies within ``max_offset`` seconds.
    """
    results: List[Dict] = []
    total_offset = 0.0
    valid_servers = 0

    for server in servers or NTP_SERVERS:
        try:
            response = client_factory().request(server, version=3, timeout=2)
        except (ntplib.NTPException, OSError) as e:
            logger.warning(f"NTP query to {server} failed: {e}")
            results.append({"server": server, "error": str(e), "status": "failed"})
            continue
        offset = response.offset
        total_offset += offset
        valid_servers += 1
        results.append({
            "server": server,
            "offset_s": round(offset, 6),
            "time": datetime.fromtimestamp(response.tx_time, tz=timezone.utc).isoformat(),
            "status": "ok" if abs(offset) <= max_offset else "drifted",
        })

    avg_offset = round(total_offset / valid_servers, 6) if valid_servers else None
    overall_ok = avg_offset is not None and abs(avg_offset) <= max_offset
    if avg_offset is not None and not overall_ok:
        logger.warning(f"Clock drift {avg_offset}s exceeds {max_offset}s")

    return {
        "overall_ok": overall_ok,
        "average_offset_s": avg_offset,
        "max_allowed_offset_s": max_offset,
        "results": results,
    }
