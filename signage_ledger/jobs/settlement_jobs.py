"""
Scheduled settlement runs.

The monthly job settles the previous calendar month for every registered
target. It can be re-run safely; unchanged statements are left alone.
"""
import logging
from datetime import date
from typing import Optional

from signage_ledger.core.clock import previous_month_bounds, utc_now
from signage_ledger.database import get_db_session
from signage_ledger.schemas.settlement import SettlementRunResult
from signage_ledger.services.settlement_service import SettlementService

logger = logging.getLogger(__name__)


async def run_monthly_settlements(today: Optional[date] = None, session_factory=None) -> Optional[SettlementRunResult]:
    """Settle last month for all active registered targets."""
    today = today or utc_now().date()
    period_start, period_end = previous_month_bounds(today)
    session_context = session_factory() if session_factory else get_db_session()

    async with session_context as db:
        service = SettlementService(db)
        targets = await service.registered_targets()
        if not targets:
            logger.info(f"No settlement targets registered; skipping {period_start}..{period_end}")
            return None
        result = await service.generate(period_start, period_end, targets, actor_id="system")

    if result.errors:
        logger.error(
            f"Monthly settlement {period_start}..{period_end} finished with "
            f"{len(result.errors)} errors: {'; '.join(result.errors)}"
        )
    for anomaly in result.anomalies:
        logger.warning(f"Settlement anomaly: {anomaly}")
    return result
