"""
Background generation jobs.

This package provides the job system behind long-running story generation:
- Database-backed job records with conditional state transitions
- Registry-based job kinds with per-kind phases, timeouts and retry budgets
- Coarse processing lock and per-job claims for workers
- Heartbeats with stale claim recovery and bounded retries
"""
