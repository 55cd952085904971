"""Task execution engine for configured maintenance commands.

The engine is split along the seams of one run:

- ``runner`` executes a single task (dry run, preconditions, timeout, capture).
- ``elevation`` negotiates a sudo session before or during execution so that
  no task blocks on a password prompt it can never answer.
- ``dispatcher`` filters, partitions and schedules tasks, sequentially or
  behind a bounded concurrency gate.
- ``summary`` folds the produced results into a report.

Collaborators (keychain, notifications, task log, prompts, progress output)
are injected through the protocols in ``ports``.
"""
