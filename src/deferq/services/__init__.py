"""Service layer — queue orchestration and the ServiceResult contract.

The gateway owns scheduling; :class:`QueueService` adapts it to
``ServiceResult`` for the CLI.
"""
