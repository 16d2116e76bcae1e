"""
Execution boundary.

The engine never signs anything. Approved actions are handed to an
ExecutionSigner, at most one batch in flight per account key.
"""
import logging
import threading
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .exceptions import ExecutionInProgressError
from .types import RebalanceAction

logger = logging.getLogger(__name__)


class ExecutionSigner(Protocol):
    def submit(self, action: RebalanceAction, account_key: str) -> Any:
        """Sign and broadcast ``action``; return a transaction handle."""


@dataclass(frozen=True)
class SubmissionResult:
    action: RebalanceAction
    handle: Any = None
    error: Optional[str] = None

    @property
    def submitted(self) -> bool:
        return self.error is None


class AccountLockRegistry:
    """One non-reentrant lock per account key."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, account_key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(account_key)
            if lock is None:
                lock = self._locks[account_key] = threading.Lock()
            return lock

    def is_locked(self, account_key: str) -> bool:
        return self._lock_for(account_key).locked()

    @contextmanager
    def hold(self, account_key: str):
        lock = self._lock_for(account_key)
        if not lock.acquire(blocking=False):
            raise ExecutionInProgressError(account_key)
        try:
            yield
        finally:
            lock.release()


default_registry = AccountLockRegistry()


def group_by_account(actions: Iterable[RebalanceAction]) -> "OrderedDict[str, List[RebalanceAction]]":
    groups: "OrderedDict[str, List[RebalanceAction]]" = OrderedDict()
    for action in actions:
        if not action.account_key:
            raise ValueError(f"Action {action.id} has no account key")
        groups.setdefault(action.account_key, []).append(action)
    return groups


def submit_serialized(actions: Iterable[RebalanceAction], signer: ExecutionSigner,
                      registry: Optional[AccountLockRegistry] = None) -> List[SubmissionResult]:
    """
    Submit approved actions one account at a time.

    A failed submission stops the rest of that account's batch, since later
    actions were planned against the state the failed one would have left.

    Raises:
        ExecutionInProgressError: if a batch for one of the accounts is
            already in flight.
    """
    registry = registry or default_registry
    results = []
    for account_key, batch in group_by_account(actions).items():
        with registry.hold(account_key):
            for index, action in enumerate(batch):
                try:
                    handle = signer.submit(action, account_key)
                except Exception as e:
                    logger.error(f"Submission of {action.type.value} {action.id} for {account_key} failed: {str(e)}")
                    results.append(SubmissionResult(action=action, error=str(e)))
                    for skipped in batch[index + 1:]:
                        results.append(SubmissionResult(action=skipped, error="skipped after earlier failure"))
                    break
                logger.info(f"Submitted {action.type.value} {action.id} for {account_key}: {handle}")
                results.append(SubmissionResult(action=action, handle=handle))
    return results
