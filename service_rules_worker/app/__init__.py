"""
Rules Worker package.

Runs inside a service that implements actions and conditions. It provides:

- app.implementors: Declarations of the actions and conditions a service offers.
- app.work_runner: Per-work state machine that follows the rule's enabled flag.
- app.worker: Publishes implementors and runs the work compiled for the service.

Create a ``RulesWorker`` inside a running event loop and ``await stop()``
when the service shuts down.
"""

from .implementors import ActionImplementor, ConditionImplementor
from .worker import RulesWorker

__all__ = ["ActionImplementor", "ConditionImplementor", "RulesWorker"]
