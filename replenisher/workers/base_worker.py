"""
Base worker class for Replenisher workers.

start()/stop() manage the worker lifecycle (set the running flag and call
initialize()/cleanup()). Workers never make timing decisions: the job
scheduler engine decides when an occurrence is due and calls into them.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger

from ..utils.time_utils import utc_now


class BaseWorker(ABC):
    """
    Abstract base class for Replenisher workers.

    Subclasses hook their handlers into the engine in initialize() and
    release them in cleanup().
    """

    def __init__(self, name: str):
        self.name = name
        self.running = False
        self.started_at: Optional[datetime] = None

    async def start(self) -> None:
        logger.info(f"Starting {self.name}")
        self.running = True
        self.started_at = utc_now()
        await self.initialize()

    async def stop(self) -> None:
        logger.info(f"Stopping {self.name}")
        self.running = False
        await self.cleanup()

    @abstractmethod
    async def initialize(self) -> None:
        """Register with collaborators and acquire resources."""

    @abstractmethod
    async def cleanup(self) -> None:
        """Release whatever initialize() acquired."""

    @property
    def uptime_seconds(self) -> Optional[float]:
        if not self.running or self.started_at is None:
            return None
        return (utc_now() - self.started_at).total_seconds()

    def get_status(self) -> Dict[str, Any]:
        """
        Get current worker status.

        Returns:
            Dictionary with worker status information
        """
        return {
            "name": self.name,
            "running": self.running,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "uptime_seconds": self.uptime_seconds,
        }

    def get_health(self) -> Dict[str, Any]:
        return {"healthy": self.running, "name": self.name}
