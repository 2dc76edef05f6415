"""
Recovery actions and the periodic auto-recovery sweep
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Set, Union

from .error_ledger import ErrorLedger
from .models import ErrorRecord, RecoveryAction
from .retry_manager import RetryManager

logger = logging.getLogger(__name__)

RecoveryCallback = Callable[[ErrorRecord], Union[None, Awaitable[None]]]


class RecoveryActionRegistry:
    """Maps recovery tags to callbacks supplied by the embedding application"""

    def __init__(self, callbacks: Optional[Mapping[RecoveryAction, RecoveryCallback]] = None):
        self.callbacks: Dict[RecoveryAction, RecoveryCallback] = dict(callbacks or {})

    def register(self, action: RecoveryAction, callback: RecoveryCallback) -> None:
        self.callbacks[action] = callback

    def unregister(self, action: RecoveryAction) -> None:
        self.callbacks.pop(action, None)

    async def perform(self, action: RecoveryAction, record: ErrorRecord) -> bool:
        """Run the callback for action; returns False when none is registered"""
        callback = self.callbacks.get(action)
        if callback is None:
            logger.debug(f"No handler registered for recovery action: {action.value}")
            return False

        result = callback(record)
        if inspect.isawaitable(result):
            await result
        return True


class AutoRecoveryScheduler:
    """
    Runs recovery actions for clients, on demand or from a periodic sweep.

    A client stays marked "in recovery" for ``cooldown`` seconds after a
    recovery starts, and is not recovered again while marked. The sweep
    recovers clients with more than ``error_threshold`` errors since their
    last recovery and expires retry counters older than ``retry_counter_ttl``.
    """

    def __init__(
        self,
        ledger: ErrorLedger,
        retry_manager: RetryManager,
        actions: Optional[RecoveryActionRegistry] = None,
        interval: float = 30.0,
        error_threshold: int = 10,
        cooldown: float = 300.0,
        retry_counter_ttl: float = 3600.0,
    ):
        self.ledger = ledger
        self.retry_manager = retry_manager
        self.actions = actions or RecoveryActionRegistry()
        self.interval = interval
        self.error_threshold = error_threshold
        self.cooldown = cooldown
        self.retry_counter_ttl = retry_counter_ttl

        self.clients_in_recovery: Set[str] = set()
        self._recovered_at_count: Dict[str, int] = {}
        self._task: Optional[asyncio.Task] = None
        self._cooldown_tasks: Dict[str, asyncio.Task] = {}
        self._stopped = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic sweep; requires a running event loop"""
        if self.is_running:
            return
        self._stopped = False
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Auto-recovery sweep started (every {self.interval}s)")

    async def stop(self) -> None:
        """Cancel the sweep and every pending cooldown; later triggers are refused until start()"""
        self._stopped = True
        tasks = list(self._cooldown_tasks.values())
        if self._task is not None:
            tasks.append(self._task)
            self._task = None
        self._cooldown_tasks.clear()

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def reset(self) -> None:
        self.clients_in_recovery.clear()
        self._recovered_at_count.clear()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Auto-recovery sweep failed: {e}")

    async def sweep(self) -> List[str]:
        """One pass of the periodic check; returns the clients recovered"""
        recovered = []
        for client_id, error_count in self.ledger.counts_by_client().items():
            if client_id in self.clients_in_recovery:
                continue
            if error_count - self._recovered_at_count.get(client_id, 0) <= self.error_threshold:
                continue

            record = self.ledger.latest(client_id)
            if record is None:
                logger.debug(f"Skipping auto-recovery for {client_id}: no error history")
                continue

            logger.info(f"Triggering scheduled auto-recovery for client: {client_id}")
            if await self.trigger(record):
                recovered.append(client_id)

        self.retry_manager.expire_stale(self.retry_counter_ttl)
        return recovered

    def is_in_recovery(self, client_id: str) -> bool:
        return client_id in self.clients_in_recovery

    async def trigger(self, record: ErrorRecord) -> bool:
        """Recover the record's client unless it is already in recovery"""
        client_id = record.client_id
        if self._stopped:
            logger.debug(f"Not recovering client {client_id}: scheduler is stopped")
            return False
        if client_id in self.clients_in_recovery:
            logger.debug(f"Client {client_id} is already in recovery")
            return False

        self.clients_in_recovery.add(client_id)
        self._recovered_at_count[client_id] = self.ledger.errors_by_client.get(client_id, 0)
        logger.info(f"Triggering auto-recovery for client: {client_id}")

        try:
            await self.execute_recovery_actions(record)
        except asyncio.CancelledError:
            self.clients_in_recovery.discard(client_id)
            raise

        if self._stopped:
            self.clients_in_recovery.discard(client_id)
            return False

        self._schedule_release(client_id)
        return True

    async def execute_recovery_actions(self, record: ErrorRecord) -> None:
        """Run every suggested action in order; a failing action does not stop the rest"""
        for action in record.recovery_actions:
            try:
                logger.info(f"Executing recovery action: {action.value}")
                await self.actions.perform(action, record)
            except Exception as e:
                logger.error(f"Recovery action failed: {action.value} - {e}")

    def _schedule_release(self, client_id: str) -> None:
        if self._stopped:
            return
        task = asyncio.get_running_loop().create_task(self._release_after_cooldown(client_id))
        self._cooldown_tasks[client_id] = task
        task.add_done_callback(lambda done: self._forget_cooldown(client_id, done))

    def _forget_cooldown(self, client_id: str, task: asyncio.Task) -> None:
        if self._cooldown_tasks.get(client_id) is task:
            del self._cooldown_tasks[client_id]

    async def _release_after_cooldown(self, client_id: str) -> None:
        await asyncio.sleep(self.cooldown)
        self.clients_in_recovery.discard(client_id)
        logger.debug(f"Client {client_id} left recovery")

    @property
    def pending_cooldowns(self) -> int:
        return len(self._cooldown_tasks)
