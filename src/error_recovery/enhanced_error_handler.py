"""
Enhanced error handler: supervises caller operations with classification,
circuit breaking, retries, fallbacks, escalation and auto-recovery.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .circuit_breaker import CategoryCircuitBreaker, utc_now
from .classifier import ErrorClassifier
from .config import ErrorHandlingConfig
from .error_ledger import ErrorLedger
from .event_stream import ErrorEventStream
from .exceptions import HandlerDisposedError
from .models import ErrorCategory, ErrorRecord, RecoveryAction
from .recovery import AutoRecoveryScheduler, RecoveryActionRegistry, RecoveryCallback
from .retry_manager import RetryManager
from .strategies import EscalationHook, FallbackHandler, HandledFailure, build_strategy_table

logger = logging.getLogger(__name__)


class EnhancedErrorHandler:
    """
    Resilience façade for remote operations.

    ``handle_error`` runs an operation, gating it through the circuit breaker
    of ``expected_category`` when one exists. A failure is classified,
    recorded in the ledger and published on ``errors`` before the configured
    strategy for its category decides what happens next. The caller gets
    either a successful result or the original exception.
    """

    def __init__(
        self,
        config: Optional[ErrorHandlingConfig] = None,
        classifier: Optional[ErrorClassifier] = None,
        fallbacks: Optional[Mapping[ErrorCategory, FallbackHandler]] = None,
        escalation_hook: Optional[EscalationHook] = None,
        recovery_actions: Optional[RecoveryActionRegistry] = None,
        retry_manager: Optional[RetryManager] = None,
        clock: Callable = utc_now,
    ):
        self.config = config or ErrorHandlingConfig()
        self.classifier = classifier or ErrorClassifier()
        self.ledger = ErrorLedger(history_limit=self.config.history_limit)
        self.retry_manager = retry_manager or RetryManager()
        self.errors = ErrorEventStream()
        self.fallbacks: Dict[ErrorCategory, FallbackHandler] = dict(fallbacks or {})

        self.circuit_breakers: Dict[ErrorCategory, CategoryCircuitBreaker] = {
            category: CategoryCircuitBreaker(
                name=category.value,
                threshold=self.config.circuit_breaker_threshold,
                timeout_seconds=self.config.circuit_breaker_timeout,
                single_probe=self.config.half_open_single_probe,
                clock=clock,
            )
            for category in self.config.circuit_breaker_categories()
        }

        self.scheduler = AutoRecoveryScheduler(
            ledger=self.ledger,
            retry_manager=self.retry_manager,
            actions=recovery_actions,
            interval=self.config.auto_recovery_interval,
            error_threshold=self.config.auto_recovery_error_threshold,
            cooldown=self.config.recovery_cooldown,
            retry_counter_ttl=self.config.retry_counter_ttl,
        )

        self.strategy_handlers = build_strategy_table(
            self.config,
            self.retry_manager,
            self.scheduler,
            self.fallbacks,
            escalation_hook,
        )

        self._disposed = False

        # Start the sweep now if constructed inside a running loop, otherwise
        # on the first handled operation
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            self.start()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def start(self) -> None:
        """Start the auto-recovery sweep when enabled; requires a running event loop"""
        if self._disposed:
            raise HandlerDisposedError()
        if self.config.enable_auto_recovery:
            self.scheduler.start()

    async def __aenter__(self) -> "EnhancedErrorHandler":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    def register_fallback(self, category: ErrorCategory, fallback: FallbackHandler) -> None:
        self.fallbacks[category] = fallback

    def register_recovery_action(self, action: RecoveryAction, callback: RecoveryCallback) -> None:
        self.scheduler.actions.register(action, callback)

    async def handle_error(
        self,
        operation: Callable[[], Any],
        client_id: Optional[str] = None,
        expected_category: Optional[ErrorCategory] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Execute operation with enhanced error handling.

        Args:
            operation: Zero-argument callable returning an awaitable or a value
            client_id: Owning client; errors without one are filed under "system"
            expected_category: Category whose circuit breaker gates the call
            context: Extra metadata merged into each ErrorRecord

        Returns:
            The operation's result, or the result of a successful retry/fallback

        Raises:
            The original exception once the strategy gives up, CircuitOpenError
            when the gate rejects the call, HandlerDisposedError after dispose()
        """
        if self._disposed:
            raise HandlerDisposedError()
        if self.config.enable_auto_recovery and not self.scheduler.is_running:
            self.scheduler.start()

        return await self._execute(operation, client_id, expected_category, dict(context or {}))

    async def _execute(
        self,
        operation: Callable[[], Any],
        client_id: Optional[str],
        expected_category: Optional[ErrorCategory],
        context: Dict[str, Any],
    ) -> Any:
        if self._disposed:
            raise HandlerDisposedError()

        try:
            breaker = self.circuit_breakers.get(expected_category) if expected_category else None
            if breaker is not None:
                return await breaker.execute(operation)

            result = operation()
            if inspect.isawaitable(result):
                result = await result
            return result

        except Exception as e:
            error = e

        # Disposed while the operation ran: state is torn down, only surface the failure
        if self._disposed:
            raise error

        # Dispatch outside the except block so retries do not chain tracebacks
        record = self.classifier.classify(error, client_id=client_id, context=context)

        self.ledger.record(record)
        await self.errors.publish(record)

        handler = self.strategy_handlers[self.config.get_strategy(record.category)]
        failure = HandledFailure(
            record=record,
            error=error,
            rerun=lambda: self._execute(operation, client_id, expected_category, context),
        )
        return await handler.handle(failure)

    def get_error_statistics(self) -> Dict[str, Any]:
        """Aggregate counters, circuit breaker snapshots and recovery/retry activity"""
        statistics = self.ledger.statistics()
        statistics.update({
            "circuit_breakers": {
                category.value: breaker.get_status()
                for category, breaker in self.circuit_breakers.items()
            },
            "clients_in_recovery": len(self.scheduler.clients_in_recovery),
            "active_retries": self.retry_manager.active_retries,
        })
        return statistics

    def get_error_history(self, client_id: str) -> Tuple[ErrorRecord, ...]:
        return self.ledger.history(client_id)

    def get_all_error_history(self) -> Mapping[str, Tuple[ErrorRecord, ...]]:
        return self.ledger.all_history()

    def clear_error_history(self, client_id: Optional[str] = None) -> None:
        """Drop history; aggregate counters and breaker state are kept"""
        self.ledger.clear(client_id)

    def is_in_recovery(self, client_id: str) -> bool:
        return self.scheduler.is_in_recovery(client_id)

    async def trigger_recovery(self, client_id: str) -> bool:
        """Run recovery now for a client, based on its most recent error"""
        if self._disposed:
            raise HandlerDisposedError()

        record = self.ledger.latest(client_id)
        if record is None:
            logger.warning(f"Cannot recover client {client_id}: no recorded errors")
            return False
        return await self.scheduler.trigger(record)

    async def dispose(self) -> None:
        """Stop background work, close the event stream and drop all state"""
        if self._disposed:
            return
        self._disposed = True

        await self.scheduler.stop()
        self.errors.close()
        self.ledger.reset()
        self.circuit_breakers.clear()
        self.retry_manager.reset()
        self.scheduler.reset()
        logger.info("Enhanced error handler disposed")
