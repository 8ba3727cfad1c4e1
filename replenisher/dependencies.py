# replenisher/dependencies.py
"""
Dependency injection for the Replenisher API.

Long-lived collaborators (database operations, snapshot store, engine,
worker) are process-wide singletons held in a ServiceRegistry; the
application lifespan starts and stops them, routers receive them through
the Annotated *Dep aliases below.
"""

from threading import Lock
from typing import Annotated, Any, Callable, Dict, Optional

from fastapi import Depends, Header, HTTPException, status

from .config import settings
from .constants import ADMIN_KEY_HEADER, USER_ID_HEADER
from .database import async_db
from .database.customer_operations import CustomerOperations
from .database.replenishment_operations import ReplenishmentOperations
from .services.checkout_client import HttpPaymentOrderClient
from .services.notification_client import HttpReplenishmentNotifier
from .services.replenishment_scheduler import ReplenishmentScheduler
from .services.replenishment_service import ReplenishmentService
from .services.scheduling.job_scheduler_engine import JobSchedulerEngine
from .services.snapshot_store import SnapshotStore
from .workers.replenishment_worker import ReplenishmentWorker


class ServiceRegistry:
    """Thread-safe registry creating each singleton on first use."""

    def __init__(self) -> None:
        self._services: Dict[str, Any] = {}
        self._factories: Dict[str, Callable[[], Any]] = {}
        self._lock = Lock()

    def register_factory(self, service_name: str, factory: Callable[[], Any]) -> None:
        with self._lock:
            self._factories[service_name] = factory

    def get_service(self, service_name: str) -> Any:
        """
        Raises:
            KeyError: If no factory is registered for the service
        """
        with self._lock:
            if service_name in self._services:
                return self._services[service_name]
            if service_name not in self._factories:
                raise KeyError(f"No factory registered for service: {service_name}")
            factory = self._factories[service_name]

        # Factories resolve their own dependencies, so build outside the lock
        instance = factory()
        with self._lock:
            return self._services.setdefault(service_name, instance)

    def clear(self) -> None:
        """Drop all instances (for testing/restart)."""
        with self._lock:
            self._services.clear()


registry = ServiceRegistry()


def get_replenishment_operations() -> ReplenishmentOperations:
    return registry.get_service("replenishment_operations")


def get_customer_operations() -> CustomerOperations:
    return registry.get_service("customer_operations")


def get_snapshot_store() -> SnapshotStore:
    return registry.get_service("snapshot_store")


def get_job_scheduler_engine() -> JobSchedulerEngine:
    return registry.get_service("job_scheduler_engine")


def get_payment_processor() -> HttpPaymentOrderClient:
    return registry.get_service("payment_processor")


def get_notifier() -> HttpReplenishmentNotifier:
    return registry.get_service("notifier")


def get_replenishment_scheduler() -> ReplenishmentScheduler:
    return registry.get_service("replenishment_scheduler")


def get_replenishment_service() -> ReplenishmentService:
    return registry.get_service("replenishment_service")


def get_replenishment_worker() -> ReplenishmentWorker:
    return registry.get_service("replenishment_worker")


registry.register_factory(
    "replenishment_operations", lambda: ReplenishmentOperations(async_db)
)
registry.register_factory("customer_operations", lambda: CustomerOperations(async_db))
registry.register_factory("snapshot_store", SnapshotStore)
registry.register_factory(
    "job_scheduler_engine",
    lambda: JobSchedulerEngine(
        retry_policy=settings.retry_policy,
        misfire_grace_seconds=settings.scheduler_misfire_grace_seconds,
        queue_name=settings.queue_name,
    ),
)
registry.register_factory("payment_processor", HttpPaymentOrderClient)
registry.register_factory("notifier", HttpReplenishmentNotifier)
registry.register_factory(
    "replenishment_scheduler",
    lambda: ReplenishmentScheduler(
        replenishment_ops=get_replenishment_operations(),
        customer_ops=get_customer_operations(),
        snapshot_store=get_snapshot_store(),
        engine=get_job_scheduler_engine(),
    ),
)
registry.register_factory(
    "replenishment_service",
    lambda: ReplenishmentService(
        replenishment_ops=get_replenishment_operations(),
        customer_ops=get_customer_operations(),
    ),
)
registry.register_factory(
    "replenishment_worker",
    lambda: ReplenishmentWorker(
        replenishment_ops=get_replenishment_operations(),
        snapshot_store=get_snapshot_store(),
        engine=get_job_scheduler_engine(),
        payment_processor=get_payment_processor(),
        notifier=get_notifier(),
    ),
)


def get_current_user_id(
    user_id: Optional[str] = Header(default=None, alias=USER_ID_HEADER),
) -> int:
    """
    Authenticated caller id, forwarded by the platform's auth gateway.

    Raises:
        HTTPException: 401 when the header is missing, 400 when malformed
    """
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    try:
        parsed = int(user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user id"
        )
    if parsed < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user id"
        )
    return parsed


def require_admin(
    admin_key: Optional[str] = Header(default=None, alias=ADMIN_KEY_HEADER),
) -> None:
    """
    Raises:
        HTTPException: 403 unless the admin key matches settings.admin_api_key
    """
    if not settings.admin_api_key or admin_key != settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required"
        )


CurrentUserIdDep = Annotated[int, Depends(get_current_user_id)]
ReplenishmentOperationsDep = Annotated[
    ReplenishmentOperations, Depends(get_replenishment_operations)
]
SnapshotStoreDep = Annotated[SnapshotStore, Depends(get_snapshot_store)]
JobSchedulerEngineDep = Annotated[JobSchedulerEngine, Depends(get_job_scheduler_engine)]
ReplenishmentSchedulerDep = Annotated[
    ReplenishmentScheduler, Depends(get_replenishment_scheduler)
]
ReplenishmentServiceDep = Annotated[
    ReplenishmentService, Depends(get_replenishment_service)
]
ReplenishmentWorkerDep = Annotated[
    ReplenishmentWorker, Depends(get_replenishment_worker)
]
