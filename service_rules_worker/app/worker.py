"""
Rules worker: publishes what a service implements and runs its work.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from shared.errors import ConfigurationError, NoImplementationError, UnsupportedActionError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.models import Work
from shared.store import ListWatch, StoreConnection
from shared.trees import (
    ACTIONS,
    COMPILED,
    CONDITIONS,
    DEFAULT_LAYOUT,
    NamespaceLayout,
    fill_tree,
    rules_tree,
    service_rules_tree,
)

from .implementors import ActionImplementor, ConditionImplementor, ItemCallback
from .work_runner import WorkRunner


class RulesWorker:
    """
    Exposes the actions and conditions of a service and runs work for them.

    Construction starts initialization in the background; the task is exposed
    as ``initialized`` and keeps initialization errors to itself. Use
    ``wait_ready()`` to wait for it and surface any error.
    """

    def __init__(
        self,
        name: str,
        conn: StoreConnection,
        actions: Optional[Sequence[ActionImplementor]] = None,
        conditions: Optional[Sequence[ConditionImplementor]] = None,
        layout: NamespaceLayout = DEFAULT_LAYOUT,
        metrics: Optional[MetricsCollector] = None
    ):
        actions = list(actions or [])
        conditions = list(conditions or [])
        if not actions and not conditions:
            raise NoImplementationError(details={"service": name})

        for implementor in [*actions, *conditions]:
            if implementor.service != name:
                raise ConfigurationError(
                    f"Implementor {implementor.name} belongs to service {implementor.service}",
                    {"service": name, "implementor": implementor.name}
                )

        self.name = name
        self.conn = conn
        self.layout = layout
        self.metrics = metrics
        self.path = layout.service_root(name)
        self.logger = get_logger("rules_worker")

        self.actions: Dict[str, ItemCallback] = {}
        self.conditions: Dict[str, ItemCallback] = {}
        self.runners: Dict[str, WorkRunner] = {}
        self.work_watch: Optional[ListWatch] = None
        self.initialization_error: Optional[BaseException] = None
        self._stopped = False

        self.initialized = asyncio.ensure_future(self._initialize(actions, conditions))

    @property
    def ready(self) -> bool:
        """Initialization finished without error."""
        return (
            self.initialized.done()
            and not self.initialized.cancelled()
            and self.initialization_error is None
        )

    async def wait_ready(self) -> None:
        """Wait for initialization and re-raise its error, if any."""
        await self.initialized
        if self.initialization_error is not None:
            raise self.initialization_error

    async def _initialize(self, actions: List[ActionImplementor], conditions: List[ConditionImplementor]) -> None:
        try:
            await self.initialize(actions, conditions)
        except asyncio.CancelledError:
            self.logger.info("Initialization cancelled", service=self.name)
            raise
        except Exception as e:
            self.initialization_error = e
            self.logger.error("Initialization failed", service=self.name, error=str(e), exc_info=True)

    async def initialize(self, actions: List[ActionImplementor], conditions: List[ConditionImplementor]) -> None:
        """Publish implementors, then start taking work."""
        await fill_tree(self.conn, service_rules_tree, self.path)
        await fill_tree(self.conn, rules_tree, self.layout.global_root)

        for action in actions:
            await self._publish(ACTIONS, action.name, action.describe().to_document())
            self.actions[action.name] = action.callback

        for condition in conditions:
            await self._publish(CONDITIONS, condition.name, condition.describe().to_document())
            if condition.callback:
                self.conditions[condition.name] = condition.callback

        self.work_watch = ListWatch(
            self.conn,
            f"{self.path}/{COMPILED}",
            self.name,
            on_add_item=self.add_work,
            resume=False
        )
        await self.work_watch.start()

        self.logger.info(
            "Rules worker initialized",
            service=self.name,
            actions=sorted(self.actions),
            conditions=len(conditions)
        )

    async def _publish(self, kind: str, name: str, description: Dict[str, Any]) -> None:
        path = self.layout.service_path(self.name, kind, name)
        response = await self.conn.put(path, description, tree=service_rules_tree)
        location = (response.location or path).lstrip("/")
        await self.conn.put(
            self.layout.global_path(kind),
            {f"{self.name}-{name}": {"id": location}},
            tree=rules_tree
        )
        self.logger.debug("Published", kind=kind, name=name, path=path)

    async def add_work(self, item: Any, work_id: str) -> None:
        """Start a runner for a newly discovered work item."""
        if work_id in self.runners:
            self.logger.info("Work already running", service=self.name, work_id=work_id)
            return

        work = item if isinstance(item, Work) else Work.model_validate(item)
        callback = self.actions.get(work.action)
        if callback is None:
            self.logger.error("Unsupported action", service=self.name, work_id=work_id, action=work.action)
            raise UnsupportedActionError(work.action, {"work_id": work_id})

        self.logger.info("Adding new work", service=self.name, work_id=work_id, action=work.action)
        runner = WorkRunner(self.conn, f"{self.name}-work-{work_id}", work, callback, metrics=self.metrics)
        self.runners[work_id] = runner
        self._count_runners()

        try:
            await runner.init()
        except Exception as e:
            self.logger.error("Error adding work", service=self.name, work_id=work_id, error=str(e))
            await runner.stop()
            self.runners.pop(work_id, None)
            self._count_runners()
            raise

    def _count_runners(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("active_work_runners", len(self.runners))

    async def stop(self) -> None:
        """Stop taking work and stop every runner."""
        if self._stopped:
            return
        self._stopped = True

        if not self.initialized.done():
            self.initialized.cancel()
            try:
                await self.initialized
            except asyncio.CancelledError:
                pass

        if self.work_watch is not None:
            await self.work_watch.stop()

        runners = list(self.runners.values())
        self.runners.clear()
        results = await asyncio.gather(*(runner.stop() for runner in runners), return_exceptions=True)
        self._count_runners()
        failures = [result for result in results if isinstance(result, Exception)]
        for failure in failures:
            self.logger.error("Work runner failed to stop", service=self.name, error=str(failure))
        self.logger.info("Rules worker stopped", service=self.name, runners=len(runners))
        if failures:
            raise failures[0]
