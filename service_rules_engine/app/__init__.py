"""
Rules Engine Service package.

Turns rules configured by operators into work for the services that
implement their actions. It provides:

- app.compiler: Compiles a rule into a single work item.
- app.media_types: Content-type matching used by the optional type check.
- app.registrar: Persists rules and fans their work out to services.
- app.main: API surface for registering and compiling rules.

Guidelines:
- Compilation is pure; nothing is written to the store until it succeeds.
- Registration writes in a fixed order and is not rolled back on failure.
"""
