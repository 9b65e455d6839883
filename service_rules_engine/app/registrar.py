"""
Rule registration: persist a rule and hand its work to the services.
"""

import uuid
from typing import Any, Awaitable, Dict, List, Optional

from shared.errors import RegistrationError, StoreError
from shared.logging import bind_work_context, clear_context, get_logger
from shared.metrics import MetricsCollector
from shared.models import ActionBinding, ConditionBinding, ConfiguredRule, Link, Work
from shared.store import StoreConnection, StoreResponse
from shared.trees import COMPILED, CONFIGURED, DEFAULT_LAYOUT, NamespaceLayout, rules_tree, service_rules_tree

from .compiler import compile_rule
from .models import RegisteredRule, RuleInput


def rule_services(rule: RuleInput) -> List[str]:
    """Services involved in a rule, in first-seen order."""
    services: List[str] = []
    for instance in [*rule.actions, *rule.conditions]:
        if instance.service and instance.service not in services:
            services.append(instance.service)
    return services


def configured_rule(rule: RuleInput, services: List[str]) -> ConfiguredRule:
    """Build the persisted form of a rule."""
    return ConfiguredRule(
        services=services,
        enabled=True,
        type=rule.type,
        path=rule.path,
        on=rule.on,
        actions={
            f"{action.service}-{action.name}": ActionBinding(action=action.link(), options=action.options)
            for action in rule.actions
        },
        conditions={
            f"{condition.service}-{condition.name}": ConditionBinding(
                condition=condition.link(),
                options=condition.options
            )
            for condition in rule.conditions
        }
    )


def _link_to(response: StoreResponse, path: str) -> Link:
    return Link(id=(response.location or path).lstrip("/"), rev=0)


class RulesEngine:
    """Compiles rules and registers their work with the services that run it."""

    def __init__(
        self,
        conn: StoreConnection,
        layout: NamespaceLayout = DEFAULT_LAYOUT,
        check_types: bool = False,
        metrics: Optional[MetricsCollector] = None
    ):
        self.conn = conn
        self.layout = layout
        self.check_types = check_types
        self.metrics = metrics
        self.logger = get_logger("rules_engine.registrar")

    async def _step(self, step: str, request: Awaitable[StoreResponse], **details) -> StoreResponse:
        try:
            return await request
        except Exception as e:
            self.logger.error("Registration step failed", step=step, error=str(e), **details)
            self._count("error")
            error_details: Dict[str, Any] = {"step": step, **details, "error": str(e)}
            if isinstance(e, StoreError):
                error_details["status"] = e.status
            raise RegistrationError(f"Rule registration failed at {step}", error_details) from e

    def _count(self, status: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("rules_registered_total", status=status)

    async def register(self, rule: RuleInput) -> RegisteredRule:
        """
        Compile ``rule`` and register it with every service involved.

        Nothing is written if compilation fails. Writes happen in order: the
        configured rule, a link to it under each service, then the work for
        the action's service. A failed write raises ``RegistrationError``;
        earlier writes are kept.
        """
        work = compile_rule(rule, check_types=self.check_types)
        services = rule_services(rule)
        configured = configured_rule(rule, services)

        rule_id = uuid.uuid4().hex
        bind_work_context(rule_id=rule_id)
        try:
            return await self._write(rule_id, rule, configured, services, work)
        finally:
            clear_context()

    async def _write(
        self,
        rule_id: str,
        rule: RuleInput,
        configured: ConfiguredRule,
        services: List[str],
        work: List[Work]
    ) -> RegisteredRule:
        rule_path = self.layout.global_path(CONFIGURED, rule_id)

        response = await self._step(
            "configured",
            self.conn.put(rule_path, configured.to_document(), tree=rules_tree),
            path=rule_path
        )
        rule_link = _link_to(response, rule_path)

        for service in services:
            path = self.layout.service_path(service, CONFIGURED)
            await self._step(
                "service-link",
                self.conn.put(path, {rule_id: rule_link.to_document()}, tree=service_rules_tree),
                path=path,
                service=service
            )

        work_links: List[Link] = []
        for piece in work:
            piece.rule = rule_link
            path = self.layout.service_path(piece.service, COMPILED)
            response = await self._step(
                "work",
                self.conn.post(path, piece.to_document(), tree=service_rules_tree),
                path=path,
                service=piece.service
            )
            work_links.append(_link_to(response, path))

        self._count("ok")
        self.logger.info(
            "Rule registered",
            rule_id=rule_id,
            path=rule.path,
            services=services,
            work=len(work_links)
        )
        return RegisteredRule(id=rule_id, rule=rule_link, services=services, work=work_links)

    async def unregister(self, rule_id: str) -> None:
        """Remove a rule and its work."""
        raise NotImplementedError("Unregistering rules is not implemented")
