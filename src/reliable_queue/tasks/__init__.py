"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, QueueStats)
- task_store.py: in-memory ordered store + persistence hook
- backoff.py: retry delay policy and task id generation
- task_scheduler.py: bounded-concurrency dispatcher with retry scheduling
"""
