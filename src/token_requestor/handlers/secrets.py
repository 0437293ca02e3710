"""
Secret handlers - drive the reconciler from kopf.

Every Secret that is managed (purpose label) or still needs cleanup
(finalizer present) gets a renewal daemon. The daemon reconciles the Secret,
then sleeps until the returned requeue-after elapses or a watch event for
the Secret wakes it. Failures are handed back to kopf as
``kopf.TemporaryError`` with a per-Secret exponential backoff.

kopf stops daemons as soon as a Secret is marked for deletion, so the
deletion cleanup runs from the event handler instead, retrying until the
finalizer is gone.
"""

import asyncio
import logging
from typing import Any

import kopf

from ..constants import (
    PURPOSE_LABEL_KEY,
    PURPOSE_TOKEN_REQUESTOR,
    TOKEN_REQUESTOR_FINALIZER,
    WATCH_EVENT_DELETED,
)
from ..errors import OperatorError, TemporaryError
from ..models import ObjectKey, ReconcileResult
from ..observability.metrics import metrics_collector
from ..settings import settings as operator_settings

logger = logging.getLogger(__name__)


def is_token_requestor_secret(
    labels: dict[str, str], meta: dict[str, Any], **_
) -> bool:
    """Filter for Secrets the token requestor is responsible for."""
    if labels.get(PURPOSE_LABEL_KEY) == PURPOSE_TOKEN_REQUESTOR:
        return True
    return TOKEN_REQUESTOR_FINALIZER in (meta.get("finalizers") or [])


def _changed(memo: kopf.Memo) -> asyncio.Event:
    return memo.setdefault("secret_changed", asyncio.Event())


def _reconcile_lock(memo: kopf.Memo) -> asyncio.Lock:
    return memo.setdefault("reconcile_lock", asyncio.Lock())


def next_backoff(memo: kopf.Memo) -> float:
    """
    Count a failure of this Secret and return the delay before the next try.

    The delay doubles with every consecutive failure, starting at
    ``REQUEUE_BASE_DELAY_SECONDS`` and capped at ``REQUEUE_MAX_DELAY_SECONDS``.
    """
    failures = memo.get("failures", 0) + 1
    memo.failures = failures
    metrics_collector.record_retry()
    delay = operator_settings.requeue_base_delay_seconds * 2 ** (failures - 1)
    return min(delay, operator_settings.requeue_max_delay_seconds)


async def reconcile_secret(memo: kopf.Memo, key: ObjectKey) -> ReconcileResult:
    """
    Run the reconciler for one Secret.

    Runs of the same Secret never overlap, and at most
    ``MAX_CONCURRENT_RECONCILES`` Secrets are reconciled at a time.

    Raises:
        OperatorError: If the reconciliation failed or timed out
    """
    timeout = operator_settings.reconcile_timeout_seconds
    async with _reconcile_lock(memo), memo.reconcile_slots:
        try:
            async with asyncio.timeout(timeout):
                result = await memo.reconciler.reconcile(key)
        except TimeoutError as e:
            raise TemporaryError(f"Reconciliation of {key} exceeded {timeout}s") from e

    memo.failures = 0
    return result


async def _wait_for_wakeup(
    changed: asyncio.Event, stopped: kopf.DaemonStopped, delay: float | None
) -> None:
    """Return after ``delay`` seconds, on a change of the Secret, or on stop."""

    async def until_stopped() -> None:
        await stopped.wait()

    wakeups = [
        asyncio.create_task(changed.wait()),
        asyncio.create_task(until_stopped()),
    ]
    try:
        await asyncio.wait(wakeups, timeout=delay, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in wakeups:
            task.cancel()


@kopf.daemon("v1", "secrets", when=is_token_requestor_secret)
async def keep_token_fresh(
    name: str, namespace: str, stopped: kopf.DaemonStopped, memo: kopf.Memo, **_
) -> None:
    """
    Reconcile a Secret whenever it changes or its token is due.

    Args:
        name: Secret name
        namespace: Secret namespace
        stopped: Set by kopf on deletion, filter mismatch or operator exit
        memo: Per-Secret memo, a copy of the operator memo
    """
    key = ObjectKey(namespace=namespace, name=name)
    changed = _changed(memo)

    while not stopped:
        changed.clear()
        try:
            result = await reconcile_secret(memo, key)
        except OperatorError as e:
            delay = next_backoff(memo)
            logger.warning(
                f"Retrying {key} in {delay:.3f}s after error: {e}",
                extra={
                    "resource_name": name,
                    "namespace": namespace,
                    "error_type": type(e).__name__,
                    "requeue_after": delay,
                },
            )
            raise kopf.TemporaryError(f"Reconciling {key} failed: {e}", delay=delay) from e

        requeue_after = (
            result.requeue_after.total_seconds()
            if result.requeue_after is not None
            else None
        )
        await _wait_for_wakeup(changed, stopped, requeue_after)


async def finish_deletion(memo: kopf.Memo, key: ObjectKey) -> None:
    """Retry the cleanup of a deleted Secret until it succeeds."""
    while True:
        try:
            await reconcile_secret(memo, key)
            return
        except OperatorError as e:
            delay = next_backoff(memo)
            logger.warning(f"Cleanup of deleted Secret {key} failed, retrying in {delay:.3f}s: {e}")
            await asyncio.sleep(delay)


@kopf.on.event("v1", "secrets", when=is_token_requestor_secret)
async def secret_event(
    event: dict[str, Any],
    name: str,
    namespace: str,
    meta: dict[str, Any],
    memo: kopf.Memo,
    **_,
) -> None:
    """
    Wake the renewal daemon, or clean up a Secret marked for deletion.

    Args:
        event: Raw watch event (type is None for the initial listing)
        name: Secret name
        namespace: Secret namespace
        meta: Secret metadata
        memo: Per-Secret memo shared with the daemon
    """
    if event.get("type") == WATCH_EVENT_DELETED:
        # The finalizer is gone already, nothing is left to clean up
        return

    if meta.get("deletionTimestamp") and TOKEN_REQUESTOR_FINALIZER in (
        meta.get("finalizers") or []
    ):
        await finish_deletion(memo, ObjectKey(namespace=namespace, name=name))
        return

    _changed(memo).set()
