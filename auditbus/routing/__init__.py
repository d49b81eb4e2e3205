"""Auditbus event routing: content-based rules fanned out to targets.

The RoutingEngine evaluates every configured rule against an event and
returns one dispatch instruction per (rule, target) pair.  The
TargetDispatcher executes those instructions against the registered
targets: the Ingestion Workflow, the append-only log sink and the
deletion notification topic.
"""
