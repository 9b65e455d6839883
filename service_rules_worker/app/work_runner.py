"""
Runs one piece of compiled work while its rule is enabled.

The runner follows the ``enabled`` flag of the rule the work came from. The
state machine itself is the pure ``next_state`` function; ``WorkRunner``
applies the effects it returns against the store.
"""

import asyncio
import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from shared.errors import InvalidWorkError, SchemaValidationError
from shared.logging import bind_work_context, clear_context, get_logger
from shared.metrics import MetricsCollector
from shared.models import TriggerMode, Work
from shared.store import ListWatch, StoreConnection

from .implementors import ItemCallback


class RunnerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    DISABLED = "disabled"
    ENABLED = "enabled"
    STOPPED = "stopped"


class RunnerEffect(str, Enum):
    OPEN_WATCH = "open_watch"
    CLOSE_WATCH = "close_watch"
    CANCEL_RULE_WATCH = "cancel_rule_watch"


@dataclass(frozen=True)
class EnabledChanged:
    """The rule's ``enabled`` flag was seen; ``None`` when a change did not include it."""
    enabled: Optional[bool]


@dataclass(frozen=True)
class StopRequested:
    """The runner is being shut down."""


RunnerEvent = Union[EnabledChanged, StopRequested]


def next_state(state: RunnerState, event: RunnerEvent) -> Tuple[RunnerState, List[RunnerEffect]]:
    """Transition function of the work runner."""
    if state == RunnerState.STOPPED:
        return state, []

    if isinstance(event, StopRequested):
        effects = [RunnerEffect.CLOSE_WATCH] if state == RunnerState.ENABLED else []
        return RunnerState.STOPPED, effects + [RunnerEffect.CANCEL_RULE_WATCH]

    if event.enabled is None:
        return state, []

    if event.enabled:
        if state == RunnerState.ENABLED:
            return state, []
        return RunnerState.ENABLED, [RunnerEffect.OPEN_WATCH]

    if state == RunnerState.ENABLED:
        return RunnerState.DISABLED, [RunnerEffect.CLOSE_WATCH]
    return RunnerState.DISABLED, []


def compile_filter(work: Work) -> Draft7Validator:
    """Validator for the merged condition schema of ``work``."""
    try:
        Draft7Validator.check_schema(work.schema_)
    except SchemaError as e:
        raise InvalidWorkError(
            "Work filter is not a valid JSON Schema",
            {"action": work.action, "error": e.message}
        ) from e
    return Draft7Validator(work.schema_)


class WorkRunner:
    """
    Runs the action of one work item over its list while the rule is enabled.

    Must be created inside a running event loop: the watch on the rule starts
    immediately, ``init()`` waits for it and applies the rule's current state.
    """

    def __init__(
        self,
        conn: StoreConnection,
        name: str,
        work: Work,
        callback: ItemCallback,
        metrics: Optional[MetricsCollector] = None
    ):
        if not work.rule.id:
            raise InvalidWorkError("Work is not linked to a rule", {"name": name})

        self.conn = conn
        self.name = name
        self.work = work
        self.callback = callback
        self.metrics = metrics
        self.logger = get_logger("rules_worker.work_runner")

        self.validator = compile_filter(work)
        self.state = RunnerState.UNINITIALIZED
        self.work_watch: Optional[ListWatch] = None
        self.watch_opens = 0
        self.watch_closes = 0
        self._lock = asyncio.Lock()

        self.rule_path = "/" + work.rule.id.lstrip("/")
        self._rule_watch = asyncio.ensure_future(conn.watch(self.rule_path, self.handle_rule_change))

    @property
    def enabled(self) -> bool:
        return self.state == RunnerState.ENABLED

    async def init(self) -> None:
        """Wait for the rule watch, then follow the rule's current state."""
        await self._rule_watch
        response = await self.conn.get(self.rule_path)
        rule = response.data if isinstance(response.data, Mapping) else {}
        await self._apply(EnabledChanged(rule.get("enabled") is not False))

    async def handle_rule_change(self, delta: Dict[str, Any]) -> None:
        """React to a change of the rule document."""
        enabled = delta.get("enabled") if isinstance(delta, Mapping) else None
        if not isinstance(enabled, bool):
            return
        await self._apply(EnabledChanged(enabled))

    async def stop(self) -> None:
        """Stop all watches of this runner."""
        await self._apply(StopRequested())

    async def _apply(self, event: RunnerEvent) -> None:
        async with self._lock:
            state, effects = next_state(self.state, event)
            failure: Optional[Exception] = None
            for effect in effects:
                try:
                    await self._perform(effect)
                except Exception as e:
                    # Stopping releases every watch even when one release fails
                    if not isinstance(event, StopRequested):
                        raise
                    self.logger.error(
                        "Work runner effect failed",
                        name=self.name,
                        effect=effect.value,
                        error=str(e)
                    )
                    failure = failure or e

            if state != self.state:
                self.logger.info(
                    "Work runner transition",
                    name=self.name,
                    from_state=self.state.value,
                    to_state=state.value
                )
                if self.metrics:
                    self.metrics.increment_counter("work_runner_transitions_total", state=state.value)
            self.state = state

            if failure is not None:
                raise failure

    async def _perform(self, effect: RunnerEffect) -> None:
        if effect == RunnerEffect.OPEN_WATCH:
            await self._open_watch()
        elif effect == RunnerEffect.CLOSE_WATCH:
            await self._close_watch()
        elif effect == RunnerEffect.CANCEL_RULE_WATCH:
            await self._cancel_rule_watch()

    async def _open_watch(self) -> None:
        handler = "on_item" if self.work.on == TriggerMode.CHANGE else "on_add_item"
        watch = ListWatch(
            self.conn,
            self.work.path,
            self.name,
            assert_item=self.assert_item,
            on_rejected=self._rejected,
            resume=True,
            **{handler: self._dispatch}
        )
        await watch.start()
        self.work_watch = watch
        self.watch_opens += 1

    async def _close_watch(self) -> None:
        watch, self.work_watch = self.work_watch, None
        if watch is not None:
            try:
                await watch.stop()
            finally:
                self.watch_closes += 1

    async def _cancel_rule_watch(self) -> None:
        try:
            watch_id = await self._rule_watch
        except Exception as e:
            self.logger.warning("Rule watch never started", name=self.name, error=str(e))
            return
        await self.conn.unwatch(watch_id)

    def assert_item(self, item: Any) -> None:
        """Raise ``SchemaValidationError`` unless ``item`` passes the work filter."""
        errors = sorted(self.validator.iter_errors(item), key=lambda e: list(e.path))
        if errors:
            raise SchemaValidationError(
                details={
                    "name": self.name,
                    "errors": [error.message for error in errors]
                }
            )

    def _rejected(self, key: str, error: Exception) -> None:
        if isinstance(error, SchemaValidationError) and self.metrics:
            self.metrics.increment_counter("work_items_rejected_total", action=self.work.action)

    async def _dispatch(self, item: Any, key: str) -> None:
        bind_work_context(work_id=self.name, rule_id=self.work.rule.id)
        self.logger.info("Running action", name=self.name, action=self.work.action, item=key)

        try:
            result = self.callback(item, copy.deepcopy(self.work.options))
            if asyncio.iscoroutine(result):
                await result
        finally:
            clear_context()

        if self.metrics:
            self.metrics.increment_counter("work_items_dispatched_total", action=self.work.action)
