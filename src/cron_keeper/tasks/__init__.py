"""
Task subsystem.

Components:
- task_models.py: data structures (TaskDefinition, TaskRecord, TaskState)
- cron_expr.py: croniter-backed expression evaluator
- history_store.py: file / SQLite / in-memory key-value stores
- ledger.py: persisted run ledger (createdAt / nextRunAt per task)
- catch_up.py: startup pass that fires missed runs
- ticker.py: APScheduler-backed tick mechanism
- task_scheduler.py: registers tasks and advances the ledger on every fire
- task_api.py: CronKeeper facade used by the rest of the app
"""
