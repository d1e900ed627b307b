"""
Core package: orchestration of migration jobs.

``coordinator.MigrationCoordinator`` ties together the scheduler, the
retrieval passes and the update passes of a job. The file-backed executor
and the CSV validator depend on ``context``, so nothing is imported here.
"""
