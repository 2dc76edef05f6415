"""
Error handling strategies, one handler per ErrorHandlingStrategy.

Each handler receives the classified failure after it has been recorded and
published. A handler either returns a successful result (retry, fallback) or
raises the original failure back to the caller.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, NoReturn, Optional, Union

from .config import ErrorHandlingConfig
from .exceptions import ResilienceError
from .models import ErrorCategory, ErrorHandlingStrategy, ErrorRecord
from .recovery import AutoRecoveryScheduler
from .retry_manager import RetryManager

logger = logging.getLogger(__name__)

FallbackHandler = Callable[[ErrorRecord], Any]
EscalationHook = Callable[[ErrorRecord], Union[None, Awaitable[None]]]


@dataclass
class HandledFailure:
    """A failure on its way through strategy dispatch"""
    record: ErrorRecord
    error: Optional[BaseException]
    rerun: Callable[[], Awaitable[Any]]


def surface(failure: HandledFailure) -> NoReturn:
    """Re-raise the original failure, or an equivalent ResilienceError"""
    if failure.error is not None:
        raise failure.error
    raise ResilienceError(failure.record.message, failure.record)


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class StrategyHandler:
    strategy: ErrorHandlingStrategy

    async def handle(self, failure: HandledFailure) -> Any:
        raise NotImplementedError


class IgnoreStrategy(StrategyHandler):
    """No retry or escalation; the failure still reaches the caller"""
    strategy = ErrorHandlingStrategy.IGNORE

    async def handle(self, failure: HandledFailure) -> Any:
        logger.debug(f"Ignoring error: {failure.record.message}")
        surface(failure)


class LogStrategy(StrategyHandler):
    strategy = ErrorHandlingStrategy.LOG

    async def handle(self, failure: HandledFailure) -> Any:
        logger.error(f"Logged error [{failure.record.code}] for {failure.record.client_id}: {failure.record.message}")
        surface(failure)


class RetryStrategy(StrategyHandler):
    """
    Exponential backoff retry. The rerun goes through the full handling path,
    so a renewed failure is classified, recorded and dispatched again and the
    recursion ends once the (client, category) budget is spent.
    """
    strategy = ErrorHandlingStrategy.RETRY

    def __init__(self, config: ErrorHandlingConfig, retry_manager: RetryManager):
        self.config = config
        self.retry_manager = retry_manager

    async def handle(self, failure: HandledFailure) -> Any:
        record = failure.record
        delay = self.retry_manager.next_delay(
            record.client_id,
            record.category,
            self.config.get_max_retries(record.category),
            self.config.get_retry_delay(record.category),
        )
        if delay is None:
            surface(failure)

        await self.retry_manager.wait(record.client_id, record.category, delay)
        try:
            return await failure.rerun()
        finally:
            # Covers cancellation and reruns that fail under another category
            self.retry_manager.clear(record.client_id, record.category)


class FallbackStrategy(StrategyHandler):
    """Alternate path per category, e.g. a cached response or a token refresh"""
    strategy = ErrorHandlingStrategy.FALLBACK

    def __init__(self, fallbacks: Mapping[ErrorCategory, FallbackHandler]):
        self.fallbacks = fallbacks

    async def handle(self, failure: HandledFailure) -> Any:
        record = failure.record
        logger.warning(f"Attempting fallback for error: {record.message}")

        fallback = self.fallbacks.get(record.category)
        if fallback is None:
            logger.warning(f"No fallback defined for {record.category.value} errors")
            surface(failure)

        try:
            result = await _resolve(fallback(record))
        except Exception as e:
            logger.error(f"Fallback for {record.category.value} failed: {e}")
            surface(failure)

        logger.info(f"Fallback succeeded for {record.category.value} error {record.id}")
        return result


class EscalateStrategy(StrategyHandler):
    strategy = ErrorHandlingStrategy.ESCALATE

    def __init__(self, hook: Optional[EscalationHook] = None):
        self.hook = hook

    async def handle(self, failure: HandledFailure) -> Any:
        record = failure.record
        logger.critical(f"CRITICAL - Escalating error [{record.code}] for {record.client_id}: {record.message}")

        if self.hook is not None:
            try:
                await _resolve(self.hook(record))
            except Exception as e:
                logger.error(f"Escalation hook failed for {record.id}: {e}")

        surface(failure)


class CircuitBreakerStrategy(StrategyHandler):
    """Gating happens before the operation runs; failures are surfaced as-is"""
    strategy = ErrorHandlingStrategy.CIRCUIT_BREAKER

    async def handle(self, failure: HandledFailure) -> Any:
        surface(failure)


class AutoRecoverStrategy(StrategyHandler):
    strategy = ErrorHandlingStrategy.AUTO_RECOVER

    def __init__(self, scheduler: AutoRecoveryScheduler):
        self.scheduler = scheduler

    async def handle(self, failure: HandledFailure) -> Any:
        await self.scheduler.trigger(failure.record)
        surface(failure)


def build_strategy_table(
    config: ErrorHandlingConfig,
    retry_manager: RetryManager,
    scheduler: AutoRecoveryScheduler,
    fallbacks: Mapping[ErrorCategory, FallbackHandler],
    escalation_hook: Optional[EscalationHook] = None,
) -> Dict[ErrorHandlingStrategy, StrategyHandler]:
    handlers = (
        IgnoreStrategy(),
        LogStrategy(),
        RetryStrategy(config, retry_manager),
        FallbackStrategy(fallbacks),
        EscalateStrategy(escalation_hook),
        CircuitBreakerStrategy(),
        AutoRecoverStrategy(scheduler),
    )
    return {handler.strategy: handler for handler in handlers}
