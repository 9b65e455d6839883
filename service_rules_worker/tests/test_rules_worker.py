"""
Unit tests for the rules worker.
"""

import asyncio
from typing import List
from unittest.mock import AsyncMock

import pytest
from pydantic import BaseModel

from service_rules_worker.app import ActionImplementor, ConditionImplementor, RulesWorker
from shared.errors import ConfigurationError, NoImplementationError, StoreError, UnsupportedActionError
from shared.schema_template import resolve_schema
from shared.store import InMemoryStore
from shared.test_helpers import create_stub_store, test_data_factory as factory

SERVICE = "mailer"


class NotifyParams(BaseModel):
    to: str
    cc: List[str] = []


def make_action(callback=None, **overrides) -> ActionImplementor:
    fields = dict(
        name="notify",
        service=SERVICE,
        type="application/json",
        description="Send a notification",
        callback=callback or AsyncMock()
    )
    fields.update(overrides)
    return ActionImplementor(**fields)


def make_condition(**overrides) -> ConditionImplementor:
    fields = dict(
        name="field-equals",
        service=SERVICE,
        type="application/json",
        description="Property equals a value",
        schema=lambda inputs: {"properties": {inputs.key: {"const": inputs.value}}}
    )
    fields.update(overrides)
    return ConditionImplementor(**fields)


class TestImplementors:
    """Test cases for action and condition declarations."""

    def test_action_params_from_model(self):
        """Test that params are derived from a pydantic model."""
        description = make_action(params_model=NotifyParams).describe()

        assert description.params["properties"]["to"]["type"] == "string"
        assert description.params["required"] == ["to"]

    def test_explicit_params_win(self):
        """Test that explicit params take precedence over the model."""
        description = make_action(params={"type": "object"}, params_model=NotifyParams).describe()

        assert description.params == {"type": "object"}

    def test_condition_schema_factory_rendered(self):
        """Test that a schema function is rendered with its pointers."""
        description = make_condition().describe()

        assert len(description.pointers) == 2
        resolved = resolve_schema(description.schema_, description.pointers, {"key": "status", "value": "paid"})
        assert resolved == {"properties": {"status": {"const": "paid"}}}

    def test_condition_plain_schema(self):
        """Test that a plain schema is published unchanged."""
        description = make_condition(schema={"required": ["total"]}).describe()

        assert description.schema_ == {"required": ["total"]}
        assert description.pointers == {}

    def test_condition_without_schema(self):
        """Test that a callback-only condition publishes no schema."""
        description = make_condition(schema=None, callback=AsyncMock()).describe()

        assert description.schema_ is None
        assert "schema" not in description.to_document()


class TestRulesWorker:
    """Test cases for RulesWorker."""

    @pytest.mark.asyncio
    async def test_requires_implementors(self):
        """Test that a worker must implement something."""
        with pytest.raises(NoImplementationError):
            RulesWorker(SERVICE, create_stub_store())

    @pytest.mark.asyncio
    async def test_rejects_foreign_implementors(self):
        """Test that implementors must belong to the worker's service."""
        with pytest.raises(ConfigurationError):
            RulesWorker(SERVICE, create_stub_store(), actions=[make_action(service="other")])

    @pytest.mark.asyncio
    async def test_publishes_actions_and_conditions(self):
        """Test publication under the service and global namespaces."""
        store = InMemoryStore()
        worker = RulesWorker(SERVICE, store, actions=[make_action()], conditions=[make_condition()])

        await worker.wait_ready()

        action = (await store.get("/bookmarks/services/mailer/rules/actions/notify")).data
        assert action["name"] == "notify"
        assert action["_type"] == "application/vnd.oada.rules.action.1+json"

        condition = (await store.get("/bookmarks/services/mailer/rules/conditions/field-equals")).data
        assert len(condition["pointers"]) == 2

        actions = (await store.get("/bookmarks/rules/actions")).data
        assert actions["mailer-notify"] == {"id": "bookmarks/services/mailer/rules/actions/notify"}
        conditions = (await store.get("/bookmarks/rules/conditions")).data
        assert "mailer-field-equals" in conditions

        assert worker.ready
        assert set(worker.actions) == {"notify"}
        assert worker.conditions == {}
        await worker.stop()

    @pytest.mark.asyncio
    async def test_condition_callbacks_kept(self):
        """Test that condition callbacks are remembered."""
        callback = AsyncMock()
        worker = RulesWorker(
            SERVICE,
            InMemoryStore(),
            conditions=[make_condition(callback=callback)]
        )

        await worker.wait_ready()

        assert worker.conditions == {"field-equals": callback}
        await worker.stop()

    @pytest.mark.asyncio
    async def test_initialization_error_kept(self):
        """Test that a failed initialization is reported, not raised."""
        store = create_stub_store()
        store.put.side_effect = StoreError("down", status=503)
        worker = RulesWorker(SERVICE, store, actions=[make_action()])

        await worker.initialized

        assert not worker.ready
        assert isinstance(worker.initialization_error, StoreError)
        with pytest.raises(StoreError):
            await worker.wait_ready()
        await worker.stop()

    @pytest.mark.asyncio
    async def test_loads_existing_work(self):
        """Test that work already compiled for the service is started."""
        store = InMemoryStore()
        await store.put("/bookmarks/rules/configured/rule-1", {"enabled": True})
        await store.put("/bookmarks/services/mailer/rules/compiled/w1", factory.create_work())

        worker = RulesWorker(SERVICE, store, actions=[make_action()])
        await worker.wait_ready()

        assert set(worker.runners) == {"w1"}
        assert worker.runners["w1"].name == "mailer-work-w1"
        assert worker.runners["w1"].enabled
        await worker.stop()

    @pytest.mark.asyncio
    async def test_add_work_ignores_known_id(self):
        """Test that rediscovered work keeps its runner."""
        store = InMemoryStore()
        await store.put("/bookmarks/rules/configured/rule-1", {"enabled": True})
        worker = RulesWorker(SERVICE, store, actions=[make_action()])
        await worker.wait_ready()

        await worker.add_work(factory.create_work(), "w1")
        runner = worker.runners["w1"]
        await worker.add_work(factory.create_work(), "w1")

        assert worker.runners["w1"] is runner
        await worker.stop()

    @pytest.mark.asyncio
    async def test_add_work_unsupported_action(self):
        """Test that work for an unknown action is refused."""
        worker = RulesWorker(SERVICE, InMemoryStore(), actions=[make_action()])
        await worker.wait_ready()

        with pytest.raises(UnsupportedActionError) as exc_info:
            await worker.add_work(factory.create_work(action="fax"), "w1")

        assert exc_info.value.action == "fax"
        assert worker.runners == {}
        await worker.stop()

    @pytest.mark.asyncio
    async def test_add_work_init_failure_cleans_up(self):
        """Test that a runner failing init is stopped and forgotten."""
        worker = RulesWorker(SERVICE, InMemoryStore(), actions=[make_action()])
        await worker.wait_ready()

        # The rule document does not exist
        with pytest.raises(StoreError):
            await worker.add_work(factory.create_work(), "w1")

        assert worker.runners == {}
        await worker.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        """Test that stop stops runners once and can be repeated."""
        store = InMemoryStore()
        await store.put("/bookmarks/rules/configured/rule-1", {"enabled": True})
        worker = RulesWorker(SERVICE, store, actions=[make_action()])
        await worker.wait_ready()
        await worker.add_work(factory.create_work(), "w1")
        runner = worker.runners["w1"]

        await worker.stop()
        await worker.stop()

        assert runner.state.value == "stopped"
        assert worker.runners == {}

    @pytest.mark.asyncio
    async def test_stop_finishes_every_runner(self):
        """Test that one runner failing to stop does not strand the others."""
        store = InMemoryStore()
        await store.put("/bookmarks/rules/configured/rule-1", {"enabled": True})
        worker = RulesWorker(SERVICE, store, actions=[make_action()])
        await worker.wait_ready()
        await worker.add_work(factory.create_work(), "w1")
        await worker.add_work(factory.create_work(), "w2")
        failing, healthy = worker.runners["w1"], worker.runners["w2"]
        release = failing.stop
        failing.stop = AsyncMock(side_effect=StoreError("store unavailable", status=503))

        with pytest.raises(StoreError):
            await worker.stop()

        failing.stop.assert_awaited_once()
        assert healthy.state.value == "stopped"
        assert worker.runners == {}
        await release()

    @pytest.mark.asyncio
    async def test_stop_during_initialization(self):
        """Test that stopping cancels an unfinished initialization."""
        store = create_stub_store()
        blocked = asyncio.Event()

        async def slow_put(path, data, tree=None):
            await blocked.wait()

        store.put.side_effect = slow_put
        worker = RulesWorker(SERVICE, store, actions=[make_action()])
        await asyncio.sleep(0)

        await worker.stop()

        assert worker.initialized.done()
        assert worker.work_watch is None
        assert not worker.ready
