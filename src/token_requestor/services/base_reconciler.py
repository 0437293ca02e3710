"""
Base reconciler class providing common patterns for key-based reconciliation.

This module defines the BaseReconciler class that wraps a reconciliation in
logging, metrics and tracing, and maps every failure onto the operator
error hierarchy so the kopf handlers only ever see OperatorError.
"""

import time
from abc import ABC, abstractmethod

from kubernetes.client.rest import ApiException

from ..errors import KubernetesAPIError, OperatorError, TemporaryError
from ..models import ObjectKey, ReconcileResult
from ..observability.logging import OperatorLogger
from ..observability.metrics import metrics_collector
from ..observability.tracing import reconcile_span


class BaseReconciler(ABC):
    """
    Base class for reconcilers keyed by namespace and name.

    Subclasses implement ``do_reconcile``; ``reconcile`` adds:
    - Correlation ID tracking and structured start/success/error logs
    - Reconciliation metrics
    - A tracing span per run
    - Error mapping (API exceptions and unexpected errors)
    """

    resource_type: str = "resource"

    def __init__(self):
        self.logger = OperatorLogger(self.__class__.__name__)

    async def reconcile(self, key: ObjectKey) -> ReconcileResult:
        """
        Main reconciliation entry point.

        Args:
            key: Namespace and name of the object to reconcile

        Returns:
            The result of the reconciliation

        Raises:
            OperatorError: If the reconciliation failed
        """
        start_time = time.time()
        self.logger.log_reconciliation_start(
            resource_type=self.resource_type,
            resource_name=key.name,
            namespace=key.namespace,
        )

        with reconcile_span(key.namespace, key.name, self.resource_type):
            async with metrics_collector.track_reconciliation(
                resource_type=self.resource_type, namespace=key.namespace
            ):
                try:
                    result = await self.do_reconcile(key)

                except OperatorError as e:
                    self._log_error(key, e, start_time)
                    raise

                except ApiException as e:
                    error = KubernetesAPIError.from_api_exception(
                        e, f"reconcile {self.resource_type} {key}"
                    )
                    self._log_error(key, error, start_time)
                    raise error from e

                except Exception as e:
                    # Wrap unexpected errors as temporary to allow retry
                    error = TemporaryError(
                        f"Unexpected error during reconciliation: {e}"
                    )
                    self._log_error(key, error, start_time, exc_info=True)
                    raise error from e

        requeue_after = (
            result.requeue_after.total_seconds()
            if result.requeue_after is not None
            else None
        )
        self.logger.log_reconciliation_success(
            resource_type=self.resource_type,
            resource_name=key.name,
            namespace=key.namespace,
            duration=time.time() - start_time,
            requeue_after=requeue_after,
        )
        return result

    def _log_error(
        self, key: ObjectKey, error: Exception, start_time: float, exc_info: bool = False
    ) -> None:
        self.logger.log_reconciliation_error(
            resource_type=self.resource_type,
            resource_name=key.name,
            namespace=key.namespace,
            error=error,
            duration=time.time() - start_time,
            exc_info=exc_info,
        )

    @abstractmethod
    async def do_reconcile(self, key: ObjectKey) -> ReconcileResult:
        """
        Perform the resource-specific reconciliation.

        Args:
            key: Namespace and name of the object to reconcile

        Returns:
            The result of the reconciliation
        """
