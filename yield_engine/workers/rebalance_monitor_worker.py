"""
Rebalance Monitor Worker - periodic portfolio analysis for monitored accounts.

Each cycle analyzes every account in MONITORED_ACCOUNTS, runs the
recommended actions through the account's auto-rebalance gate, alerts on
approved and critical actions (with cooldown), and hands approved actions to
the execution signer when one is configured.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from django.conf import settings
from django.utils.module_loading import import_string

from ..alerts import LoggingNotifier, RebalanceAlerter, TelegramNotifier
from ..conf import engine_setting
from ..exceptions import ExecutionInProgressError, InvalidConfigurationError
from ..execution import SubmissionResult, submit_serialized
from ..gate import Rejection
from ..serializers import AutoRebalanceConfigSerializer
from ..service import YieldOptimizationService, build_default_service
from ..types import AutoRebalanceConfig, Priority, RebalanceAction

logger = logging.getLogger(__name__)


@dataclass
class MonitoredAccount:
    address: str
    config: AutoRebalanceConfig
    target_apy: Optional[float] = None


@dataclass
class AccountCycleResult:
    address: str
    recommended: Tuple[RebalanceAction, ...] = ()
    approved: Tuple[RebalanceAction, ...] = ()
    rejected: Tuple[Rejection, ...] = ()
    alerted: Tuple[RebalanceAction, ...] = ()
    submissions: List[SubmissionResult] = field(default_factory=list)
    error: Optional[str] = None


def parse_monitored_accounts(entries: Sequence[Dict]) -> List[MonitoredAccount]:
    """Turn MONITORED_ACCOUNTS entries into typed accounts; invalid entries are logged and skipped."""
    accounts = []
    for entry in entries:
        address = entry.get("address")
        if not address:
            logger.error(f"Monitored account entry without address: {entry}")
            continue
        serializer = AutoRebalanceConfigSerializer(data=entry.get("config", {}))
        if not serializer.is_valid():
            logger.error(f"Invalid auto-rebalance config for {address}: {serializer.errors}")
            continue
        accounts.append(MonitoredAccount(
            address=address,
            config=AutoRebalanceConfigSerializer.to_config(serializer.validated_data),
            target_apy=entry.get("target_apy"),
        ))
    return accounts


def build_notifier():
    token = getattr(settings, "TELEGRAM_BOT_TOKEN", "")
    chat_ids = getattr(settings, "TELEGRAM_CHAT_IDS", [])
    if token and chat_ids:
        return TelegramNotifier(token, chat_ids)
    return LoggingNotifier()


def build_signer():
    path = engine_setting("EXECUTION_SIGNER")
    if not path:
        return None
    return import_string(path)()


class RebalanceMonitorWorker:

    def __init__(self, service: Optional[YieldOptimizationService] = None,
                 alerter: Optional[RebalanceAlerter] = None, signer=None,
                 accounts: Optional[List[MonitoredAccount]] = None, interval: int = 300):
        self.service = service or build_default_service()
        self.alerter = alerter or RebalanceAlerter(build_notifier())
        self.signer = signer if signer is not None else build_signer()
        self.accounts = accounts if accounts is not None else parse_monitored_accounts(
            engine_setting("MONITORED_ACCOUNTS")
        )
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def process_account(self, account: MonitoredAccount) -> AccountCycleResult:
        analysis = self.service.analyze_portfolio(account.address, target_apy=account.target_apy,
                                                  config=account.config)
        gate = self.service.evaluate_auto_execution(analysis.actions, account.config)

        approved_ids = {a.id for a in gate.approved}
        to_alert = list(gate.approved) + [
            a for a in analysis.actions if a.priority == Priority.CRITICAL and a.id not in approved_ids
        ]
        alerted = self.alerter.alert(account.address, to_alert, account.config) if to_alert else []

        submissions = []
        if self.signer is not None and gate.approved:
            submissions = submit_serialized(gate.approved, self.signer)

        if analysis.analytics.partial_data:
            logger.warning(f"{account.address}: analysis used partial data: {list(analysis.analytics.partial_data_reasons)}")
        logger.info(
            f"{account.address}: {len(analysis.actions)} recommended, {len(gate.approved)} approved, "
            f"{len(alerted)} alerted, {len(submissions)} submitted"
        )
        return AccountCycleResult(
            address=account.address,
            recommended=analysis.actions,
            approved=gate.approved,
            rejected=gate.rejected,
            alerted=tuple(alerted),
            submissions=submissions,
        )

    def run_monitoring_cycle(self) -> List[AccountCycleResult]:
        """Run one cycle over every monitored account; one account failing does not stop the others."""
        logger.info(f"Starting rebalance monitoring cycle for {len(self.accounts)} accounts")
        results = []
        for account in self.accounts:
            try:
                results.append(self.process_account(account))
            except (InvalidConfigurationError, ExecutionInProgressError) as e:
                logger.warning(f"Skipping {account.address}: {str(e)}")
                results.append(AccountCycleResult(address=account.address, error=str(e)))
            except Exception as e:
                logger.error(f"Error monitoring {account.address}: {str(e)}", exc_info=True)
                results.append(AccountCycleResult(address=account.address, error=str(e)))
        return results

    def _run_loop(self):
        while not self._stop_event.is_set():
            self.run_monitoring_cycle()
            self._stop_event.wait(self.interval)

    def start(self, loop: bool = True):
        """Run one cycle now, or start the background loop when ``loop`` is True."""
        if not loop:
            return self.run_monitoring_cycle()
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Rebalance monitor already running")
            return None
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="rebalance-monitor", daemon=True)
        self._thread.start()
        logger.info(f"Rebalance monitor started (interval {self.interval}s)")
        return None

    def stop(self):
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        self._thread = None
        logger.info("Rebalance monitor stopped")
