"""
Shared-secret HTTP triggers for the scheduled billing passes.

Each job is also a Celery beat task (billing.tasks); these endpoints let
an external scheduler or an operator run a pass on demand.
"""
