"""
Rebalance alerts with per-alert cooldown.

Cooldown bookkeeping is an injected CooldownStore so the engine itself stays
stateless: Django's cache in production, an in-memory dict in tests.
"""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Iterable, List, Optional, Sequence

import httpx
from django.core.cache import cache

from .conf import engine_setting
from .types import AutoRebalanceConfig, Priority, RebalanceAction

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
INITIAL_BACKOFF_DELAY = 1
CONCURRENCY_LIMIT = 25
# Recent messages LoggingNotifier keeps for inspection
RECENT_ALERTS_KEPT = 100


# -----------------------------
# Cooldown stores
# -----------------------------
class CooldownStore(ABC):

    @abstractmethod
    def claim(self, key: str, cooldown_seconds: float) -> bool:
        """Return True and start the cooldown if ``key`` is not cooling down."""

    @abstractmethod
    def reset(self, key: str):
        """Forget ``key`` so the next claim succeeds."""


class CacheCooldownStore(CooldownStore):
    """Cooldowns kept in Django's cache; ``cache.add`` makes the claim atomic."""

    prefix = "yield_engine:alert"

    def __init__(self, backend=None):
        self.cache = backend or cache

    def claim(self, key: str, cooldown_seconds: float) -> bool:
        return self.cache.add(f"{self.prefix}:{key}", time.time(), timeout=max(1, int(cooldown_seconds)))

    def reset(self, key: str):
        self.cache.delete(f"{self.prefix}:{key}")


class InMemoryCooldownStore(CooldownStore):

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._last = {}

    def claim(self, key: str, cooldown_seconds: float) -> bool:
        now = self._clock()
        last = self._last.get(key)
        if last is not None and now - last < cooldown_seconds:
            return False
        self._last[key] = now
        return True

    def reset(self, key: str):
        self._last.pop(key, None)


# -----------------------------
# Notifiers
# -----------------------------
class Notifier(ABC):

    @abstractmethod
    def send(self, message: str) -> bool:
        """Deliver ``message``; True when at least one recipient got it."""


class LoggingNotifier(Notifier):

    def __init__(self, keep: int = RECENT_ALERTS_KEPT):
        self.sent = deque(maxlen=keep)

    def send(self, message: str) -> bool:
        logger.warning(f"Rebalance alert:\n{message}")
        self.sent.append(message)
        return True


def _retry_after(response: httpx.Response) -> float:
    """Seconds Telegram asks us to wait; 0 when the 429 body does not say."""
    try:
        return float(response.json().get("parameters", {}).get("retry_after", 0))
    except (ValueError, TypeError, AttributeError):
        return 0.0


class TelegramNotifier(Notifier):
    """Broadcast to Telegram chats, respecting 429 rate limits with backoff."""

    def __init__(self, token: str, chat_ids: Sequence[int], base_url: str = "https://api.telegram.org",
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        if not token:
            raise ValueError("Telegram token is required")
        self.token = token
        self.chat_ids = list(chat_ids)
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    async def _send_one(self, session: httpx.AsyncClient, chat_id: int, message: str) -> bool:
        url = f"{self.base_url}/bot{self.token}/sendMessage"
        payload = {"chat_id": chat_id, "text": message, "parse_mode": "Markdown"}

        for attempt in range(MAX_RETRIES):
            try:
                response = await session.post(url, json=payload, timeout=10)
            except httpx.RequestError as e:
                logger.error(f"HTTP Request error for {chat_id}: {e}")
                return False

            if response.status_code == 200:
                return True
            if response.status_code == 429:
                retry_after = _retry_after(response)
                wait_time = retry_after if retry_after > 0 else INITIAL_BACKOFF_DELAY * (2 ** attempt)
                logger.warning(f"Rate limit hit for {chat_id}, waiting {wait_time}s")
                await asyncio.sleep(wait_time)
                continue
            logger.error(f"Failed to send to {chat_id}: Status {response.status_code}, Response: {response.text}")
            return False

        logger.error(f"Failed to send message to {chat_id} after {MAX_RETRIES} attempts.")
        return False

    async def broadcast(self, message: str) -> int:
        semaphore = asyncio.Semaphore(CONCURRENCY_LIMIT)

        async def send_with_semaphore(session, chat_id):
            async with semaphore:
                return await self._send_one(session, chat_id, message)

        async with httpx.AsyncClient(transport=self._transport) as session:
            results = await asyncio.gather(*(send_with_semaphore(session, c) for c in self.chat_ids))
        success_count = sum(1 for r in results if r)
        logger.info(f"Broadcast complete. Message sent to {success_count}/{len(self.chat_ids)} chats.")
        return success_count

    def send(self, message: str) -> bool:
        if not self.chat_ids:
            logger.warning("TelegramNotifier has no chat ids configured")
            return False
        return asyncio.run(self.broadcast(message)) > 0


# -----------------------------
# Alerter
# -----------------------------
def alert_key(action: RebalanceAction) -> str:
    """Stable identity of an alert; action ids are fresh per run so they cannot be used."""
    return f"{action.account_key}:{action.trigger}:{action.from_protocol}:{action.to_protocol}:{action.asset}"


def is_emergency(action: RebalanceAction, config: Optional[AutoRebalanceConfig]) -> bool:
    if config is None or not config.emergency_withdraw.enabled:
        return False
    return action.priority == Priority.CRITICAL and action.trigger in config.emergency_withdraw.trigger_conditions


def format_alert(account: str, actions: Iterable[RebalanceAction],
                 config: Optional[AutoRebalanceConfig] = None) -> str:
    lines = [f"*Rebalance alert* for `{account}`"]
    for action in actions:
        prefix = "EMERGENCY " if is_emergency(action, config) else ""
        target = config.emergency_withdraw.target_asset if prefix else action.asset
        lines.append(
            f"- {prefix}[{action.priority.value}] {action.type.value} {action.amount:,.2f} USD "
            f"{action.from_protocol or '-'} -> {action.to_protocol} ({target}): {action.reason}"
        )
    return "\n".join(lines)


class RebalanceAlerter:

    def __init__(self, notifier: Notifier, store: Optional[CooldownStore] = None,
                 cooldown_minutes: Optional[float] = None):
        self.notifier = notifier
        self.store = store or CacheCooldownStore()
        minutes = cooldown_minutes if cooldown_minutes is not None else engine_setting("ALERT_COOLDOWN_MINUTES")
        self.cooldown_seconds = float(minutes) * 60

    def _release(self, actions: Iterable[RebalanceAction]):
        for action in actions:
            self.store.reset(alert_key(action))

    def alert(self, account: str, actions: Sequence[RebalanceAction],
              config: Optional[AutoRebalanceConfig] = None) -> List[RebalanceAction]:
        """
        Notify about actions whose alert is not cooling down.

        Returns the actions that were announced. If delivery fails their
        cooldowns are released so the next run retries them.
        """
        fresh = [a for a in actions if self.store.claim(alert_key(a), self.cooldown_seconds)]
        if not fresh:
            logger.debug(f"All alerts for {account} are cooling down")
            return []
        try:
            delivered = self.notifier.send(format_alert(account, fresh, config))
        except Exception:
            self._release(fresh)
            raise
        if not delivered:
            logger.error(f"Alert delivery for {account} failed")
            self._release(fresh)
            return []
        return fresh
