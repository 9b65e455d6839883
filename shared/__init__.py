"""
Shared utilities for the rules services.

This package aggregates common building blocks consumed by all services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with work/rule correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorator for store calls
- models: Documents exchanged through the store
- schema_template: Placeholders in condition schemas
- trees: Namespace layout of rules documents
- store: Document store connections and list watches

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
