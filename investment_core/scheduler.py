"""
Accrual Scheduler

Server-side daily job that refreshes the cached current_value of every
active investment and completes the ones that have matured. Each
investment is processed in its own atomic block; a failure on one is logged
and recorded, and the run carries on with the rest.

Run a single pass from cron with:

    python -m investment_core.scheduler --db investment_core.db
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional
import argparse
import json
import logging
import sys

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .accrual import current_value, is_mature
from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock, ensure_utc
from .errors import retry_on_conflict
from .investments import InvestmentManager
from .logging_config import log_action
from .storage import StorageInterface

if TYPE_CHECKING:
    from .system import InvestmentSystem

logger = logging.getLogger(__name__)

ACCRUAL_JOB_ID = "daily_accrual"


@dataclass
class AccrualRunResult:
    run_at: datetime
    updated: List[str] = field(default_factory=list)
    completed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "run_at": self.run_at.isoformat(),
            "updated": self.updated,
            "completed": self.completed,
            "failed": self.failed,
        }


class AccrualScheduler:

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 investments: InvestmentManager, clock: Optional[Clock] = None,
                 conflict_retries: int = 1):
        self.storage = storage
        self.audit_trail = audit_trail
        self.investments = investments
        self.clock = clock or SystemClock()
        self.conflict_retries = conflict_retries

    def run_once(self, now: Optional[datetime] = None) -> AccrualRunResult:
        """Refresh every active investment as of now"""
        moment = ensure_utc(now) if now else self.clock.now()
        result = AccrualRunResult(run_at=moment)
        refresh = retry_on_conflict(self.conflict_retries)(self._refresh)

        for investment in self.investments.list_all_active():
            try:
                outcome = refresh(investment.id, moment)
            except Exception as e:
                log_action(logger, "error", f"Accrual failed: {e}",
                           user_id=investment.account_id, action="accrual_run",
                           resource=f"investment:{investment.id}")
                result.failed.append(investment.id)
                continue
            if outcome == "completed":
                result.completed.append(investment.id)
            elif outcome == "updated":
                result.updated.append(investment.id)

        self.audit_trail.log_event(
            event_type=AuditEventType.ACCRUAL_RUN,
            entity_type="system",
            entity_id=ACCRUAL_JOB_ID,
            metadata={
                "updated": len(result.updated),
                "completed": len(result.completed),
                "failed": result.failed,
            }
        )
        log_action(logger, "error" if result.failed else "info",
                   f"Accrual run: {len(result.updated)} updated, {len(result.completed)} completed, "
                   f"{len(result.failed)} failed",
                   action="accrual_run", extra={"failed": result.failed})
        return result

    def _refresh(self, investment_id: str, now: datetime) -> str:
        with self.storage.atomic():
            investment = self.investments.get_investment(investment_id)
            if not investment.is_active:
                return "skipped"
            if is_mature(investment, now):
                self.investments.complete_investment(investment, now)
                return "completed"

            value = current_value(investment, now)
            if value == investment.current_value:
                return "unchanged"
            investment.current_value = value
            investment.updated_at = now
            self.investments.save_investment(investment)
            return "updated"


def start_scheduler(system: 'InvestmentSystem') -> AsyncIOScheduler:
    """Register the daily accrual job and start it on the running event loop"""
    config = system.config
    scheduler = AsyncIOScheduler(timezone='UTC')
    scheduler.add_job(
        system.scheduler.run_once,
        trigger=CronTrigger(hour=config.accrual_cron_hour, minute=config.accrual_cron_minute,
                            timezone='UTC'),
        id=ACCRUAL_JOB_ID,
        name="Daily Investment Accrual",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Accrual job scheduled daily at "
                f"{config.accrual_cron_hour:02d}:{config.accrual_cron_minute:02d} UTC")
    return scheduler


def main(argv: Optional[List[str]] = None) -> int:
    from .config import get_config
    from .logging_config import setup_logging
    from .system import InvestmentSystem

    parser = argparse.ArgumentParser(description="Run one investment accrual pass")
    parser.add_argument("--db", help="Database path (defaults to INVEST_DATABASE_PATH)")
    parser.add_argument("--now", help="ISO timestamp to accrue as of (defaults to now, UTC)")
    args = parser.parse_args(argv)

    config = get_config()
    if args.db:
        config = config.model_copy(update={"database_path": args.db})
    setup_logging(config.log_level, config.log_format)

    now = ensure_utc(datetime.fromisoformat(args.now)) if args.now else None
    system = InvestmentSystem(config=config)
    try:
        result = system.scheduler.run_once(now)
    finally:
        system.close()

    print(json.dumps(result.to_dict()))
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
