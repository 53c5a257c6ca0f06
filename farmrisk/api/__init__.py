"""
API orchestration boundary for the farm risk advisor.

Design intent:
- Expose thin, typed endpoints for risk, scenario, outcome and cohort flows.
- Keep request validation explicit and failure modes predictable.
- Orchestrate modules without embedding domain logic in routers.
"""
