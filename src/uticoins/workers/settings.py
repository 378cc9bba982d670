"""arq worker settings module.

Import path for arq CLI: arq uticoins.workers.settings.WorkerSettings
"""

from __future__ import annotations

from uticoins.rewards.worker import RewardsWorkerSettings as WorkerSettings

__all__ = ["WorkerSettings"]
