"""
Scheduled background work for FairGuard.

- **maintenance_scheduler.py**: ``MaintenanceScheduler``, which periodically
  runs the engine's cleanup jobs (expired warnings, expired pending warns,
  stale AI confirmations, old activity rows) with graceful cancellation on
  shutdown.
"""
