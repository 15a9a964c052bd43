"""Background query processing.

  - Query Dispatcher: one query → every provider, failures isolated
  - Job Orchestrator: pending → processing → completed | failed
  - Job Runners: in-process supervised tasks or a Celery queue
"""
