"""
Rules Engine service.
"""

from typing import Dict, Optional

from fastapi import Query
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.errors import StoreError
from shared.store import StoreConnection, create_store
from shared.trees import NamespaceLayout

from .compiler import compile_rule
from .models import CompileResponse, RegisteredRule, RuleInput
from .registrar import RulesEngine


class RulesEngineService(BaseService):
    """Rules engine service implementation."""

    def __init__(self, store: Optional[StoreConnection] = None):
        super().__init__("rules-engine", 8020)

        self.owns_store = store is None
        self.store = store if store is not None else create_store(self.config)
        self.layout = NamespaceLayout.from_config(self.config)
        self.engine = RulesEngine(
            self.store,
            layout=self.layout,
            check_types=self.config.check_types,
            metrics=self.metrics
        )

        self._setup_rules_routes()

    def _setup_rules_routes(self):
        """Set up rules-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "rules-engine",
                "message": "Rules Engine Service",
                "version": "1.0.0",
                "capabilities": ["compile", "register"]
            }

        @self.app.post("/rules", response_model=RegisteredRule, status_code=201)
        async def register_rule(rule: RuleInput):
            """Compile a rule and register its work."""
            return await self.engine.register(rule)

        @self.app.post("/rules/compile", response_model=CompileResponse)
        async def compile_only(
            rule: RuleInput,
            check_types: Optional[bool] = Query(None, description="Override the configured type check")
        ):
            """Compile a rule without registering it."""
            check = self.config.check_types if check_types is None else check_types
            return CompileResponse.from_work(compile_rule(rule, check_types=check))

        @self.app.delete("/rules/{rule_id}", status_code=204)
        async def unregister_rule(rule_id: str):
            """Remove a rule."""
            try:
                await self.engine.unregister(rule_id)
            except NotImplementedError as e:
                self.logger.warning("Unregister requested", rule_id=rule_id)
                return JSONResponse(
                    status_code=501,
                    content={"code": "NOT_IMPLEMENTED", "message": str(e), "details": {"rule_id": rule_id}}
                )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check store reachability."""
        try:
            await self.store.get(self.layout.global_root)
            return {"store": "ok"}
        except StoreError as e:
            if e.status == 404:
                return {"store": "ok"}
            self.logger.warning("Store check failed", error=str(e))
            return {"store": "error"}
        except Exception as e:
            self.logger.warning("Store check failed", error=str(e))
            return {"store": "error"}

    async def stop(self):
        """Close the store connection if this service opened it."""
        if self.owns_store:
            await self.store.close()
        self.logger.info("Rules engine service stopped")


def create_app(store: Optional[StoreConnection] = None):
    """Create rules engine service application."""
    service = RulesEngineService(store)
    return service.app


if __name__ == "__main__":
    service = RulesEngineService()
    service.run()
