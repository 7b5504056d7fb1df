"""Backup & Disaster Recovery: Recovery Plan Engine.

Holds named recovery plans and executes their steps in dependency order
against a loaded snapshot, or in dry-run mode against a stub snapshot to
test a plan without touching any data.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol, runtime_checkable

from ausmo.errors import NotFoundError, PlanConfigurationError, StepExecutionError
from ausmo.logging_config import PerformanceTimer
from ausmo.observability import NullSink, ObservabilitySink

from .capture import SnapshotDocument
from .config import SCHEMA_VERSION, DataDomain
from .integrity import verify_structure

logger = logging.getLogger(__name__)

MAX_TEST_RESULTS = 10


class StepType(str, Enum):
    """Kind of recovery step; each kind has exactly one handler."""

    DATA_RESTORE = "data_restore"
    CACHE_CLEAR = "cache_clear"
    SERVICE_RESTART = "service_restart"
    USER_NOTIFICATION = "user_notification"
    MONITORING_ALERT = "monitoring_alert"


class StepPriority(str, Enum):
    """Priority of a recovery step. A failed critical step aborts the plan."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class RecoveryStep:
    """One step of a recovery plan.

    A ``DATA_RESTORE`` step with no ``domain`` verifies the snapshot
    instead of writing a domain back.
    """

    id: str
    name: str
    description: str = ""
    type: StepType = StepType.DATA_RESTORE
    priority: StepPriority = StepPriority.MEDIUM
    timeout_seconds: float = 60.0
    retry_count: int = 0
    dependencies: list[str] = field(default_factory=list)
    domain: Optional[DataDomain] = None


@dataclass
class RecoveryTestResult:
    """Outcome of a dry-run plan execution.

    The three metrics are comparative heuristics, not measurements.
    """

    id: str
    timestamp: datetime
    duration_seconds: float
    success: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    data_integrity: float = 0.0
    performance: float = 0.0
    user_experience: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "duration_seconds": round(self.duration_seconds, 4),
            "success": self.success,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "metrics": {
                "data_integrity": self.data_integrity,
                "performance": round(self.performance, 2),
                "user_experience": self.user_experience,
            },
        }


@dataclass
class RecoveryPlan:
    """A named, dependency-ordered set of recovery steps."""

    id: str
    name: str
    description: str = ""
    trigger_conditions: list[str] = field(default_factory=list)
    steps: list[RecoveryStep] = field(default_factory=list)
    estimated_duration_seconds: float = 0.0
    last_tested: Optional[datetime] = None
    test_results: list[RecoveryTestResult] = field(default_factory=list)

    def step(self, step_id: str) -> RecoveryStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(step_id)

    def record_test_result(self, result: RecoveryTestResult) -> None:
        self.test_results.append(result)
        del self.test_results[:-MAX_TEST_RESULTS]
        self.last_tested = result.timestamp


@dataclass
class RestoreOptions:
    """Options for a restore. ``data_types`` only applies when ``selective``."""

    selective: bool = False
    data_types: list[DataDomain] = field(default_factory=list)
    verify_integrity: bool = True

    def includes(self, domain: DataDomain) -> bool:
        return not self.selective or domain in self.data_types


@dataclass
class PlanExecution:
    """What happened while a plan ran."""

    plan_id: str
    dry_run: bool = False
    executed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.errors


@runtime_checkable
class RecoveryHooks(Protocol):
    """Application-side effects a recovery plan can trigger."""

    def restore_domain(self, domain: DataDomain, payload: Any) -> None: ...

    def clear_cache(self) -> None: ...

    def restart_services(self) -> None: ...

    def notify_users(self, message: str) -> None: ...


class NullRecoveryHooks:
    """Hooks that only log."""

    def restore_domain(self, domain: DataDomain, payload: Any) -> None:
        logger.info("No restore hook registered for %s", domain.value)

    def clear_cache(self) -> None:
        logger.info("No cache hook registered")

    def restart_services(self) -> None:
        logger.info("No service restart hook registered")

    def notify_users(self, message: str) -> None:
        logger.info("No notification hook registered: %s", message)


@dataclass
class StepContext:
    """Inputs available to a step handler."""

    plan: RecoveryPlan
    snapshot: SnapshotDocument
    options: RestoreOptions
    dry_run: bool = False


StepHandler = Callable[[RecoveryStep, StepContext], None]


@dataclass
class RecoveryEngineConfig:
    """Retry backoff between attempts is ``base ** attempt * scale`` seconds."""

    retry_backoff_base: float = 2.0
    retry_backoff_scale: float = 0.01
    max_backoff_seconds: float = 30.0


def stub_snapshot() -> SnapshotDocument:
    """Non-destructive snapshot with every domain present, for dry runs."""
    return SnapshotDocument(
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=SCHEMA_VERSION,
        data={domain.value: {} for domain in DataDomain},
    )


class RecoveryPlanEngine:
    """Registry and executor of recovery plans."""

    def __init__(
        self,
        hooks: Optional[RecoveryHooks] = None,
        observability: Optional[ObservabilitySink] = None,
        config: Optional[RecoveryEngineConfig] = None,
        handlers: Optional[Mapping[StepType, StepHandler]] = None,
        plans: Optional[list[RecoveryPlan]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.hooks = hooks or NullRecoveryHooks()
        self.observability = observability or NullSink()
        self.config = config or RecoveryEngineConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._handlers: dict[StepType, StepHandler] = {
            StepType.DATA_RESTORE: self._handle_data_restore,
            StepType.CACHE_CLEAR: self._handle_cache_clear,
            StepType.SERVICE_RESTART: self._handle_service_restart,
            StepType.USER_NOTIFICATION: self._handle_user_notification,
            StepType.MONITORING_ALERT: self._handle_monitoring_alert,
        }
        if handlers:
            self._handlers.update(handlers)
        missing = [t.value for t in StepType if t not in self._handlers]
        if missing:
            raise PlanConfigurationError(f"No handler for step types: {missing}")

        self._plans: dict[str, RecoveryPlan] = {}
        self._lock = threading.Lock()
        for plan in plans if plans is not None else default_plans():
            self.register_plan(plan)

    # ── Plan registry ────────────────────────────────────────────────

    def register_plan(self, plan: RecoveryPlan) -> None:
        """Validate and add (or replace) a plan."""
        self.execution_levels(plan)
        with self._lock:
            self._plans[plan.id] = plan
        logger.debug("Registered recovery plan '%s' (%d steps)", plan.id, len(plan.steps))

    def get_plan(self, plan_id: str) -> RecoveryPlan:
        with self._lock:
            plan = self._plans.get(plan_id)
        if plan is None:
            raise NotFoundError(
                f"Recovery plan '{plan_id}' not found",
                resource_type="recovery_plan",
                resource_id=plan_id,
            )
        return plan

    def plans(self) -> list[RecoveryPlan]:
        with self._lock:
            return list(self._plans.values())

    # ── Ordering ─────────────────────────────────────────────────────

    @staticmethod
    def execution_levels(plan: RecoveryPlan) -> list[list[str]]:
        """Group step ids into levels; every step's dependencies sit in earlier levels.

        Within a level ids are sorted. Raises ``PlanConfigurationError`` on
        duplicate ids, cycles, or dependencies on unknown steps.
        """
        ids = [step.id for step in plan.steps]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise PlanConfigurationError(
                f"Recovery plan '{plan.id}' has duplicate step ids: {duplicates}",
                plan_id=plan.id,
                step_ids=duplicates,
            )

        dependencies = {step.id: set(step.dependencies) for step in plan.steps}
        remaining = set(ids)
        done: set[str] = set()
        levels: list[list[str]] = []
        while remaining:
            eligible = sorted(s for s in remaining if dependencies[s] <= done)
            if not eligible:
                unresolved = sorted(remaining)
                raise PlanConfigurationError(
                    f"Recovery plan '{plan.id}' has circular or missing dependencies "
                    f"among steps {unresolved}",
                    plan_id=plan.id,
                    step_ids=unresolved,
                )
            levels.append(eligible)
            done.update(eligible)
            remaining.difference_update(eligible)
        return levels

    # ── Execution ────────────────────────────────────────────────────

    def execute(
        self,
        plan: RecoveryPlan,
        snapshot: SnapshotDocument,
        options: Optional[RestoreOptions] = None,
        dry_run: bool = False,
    ) -> PlanExecution:
        """Run every step of ``plan`` in dependency order.

        A failed critical step raises ``StepExecutionError`` and nothing after
        it runs. A failed non-critical step is recorded as a warning and still
        counts as done for its dependents.
        """
        levels = self.execution_levels(plan)
        context = StepContext(plan, snapshot, options or RestoreOptions(), dry_run)
        execution = PlanExecution(plan_id=plan.id, dry_run=dry_run)
        mode = "dry run" if dry_run else "execution"
        logger.info("Starting %s of recovery plan '%s'", mode, plan.id)

        with PerformanceTimer(f"recovery_plan.{plan.id}") as timer:
            try:
                for level in levels:
                    for step_id in level:
                        self._execute_step(plan.step(step_id), context, execution)
            finally:
                execution.duration_seconds = time.perf_counter() - timer.start_time

        logger.info(
            "Recovery plan '%s' finished: %d executed, %d skipped, %d warnings",
            plan.id, len(execution.executed), len(execution.skipped), len(execution.warnings),
        )
        return execution

    def _execute_step(
        self, step: RecoveryStep, context: StepContext, execution: PlanExecution
    ) -> None:
        reason = self._skip_reason(step, context)
        if reason:
            logger.info(
                "Skipping step '%s': %s", step.id, reason,
                extra={"plan_id": context.plan.id, "step_id": step.id},
            )
            execution.skipped.append(step.id)
            return

        try:
            self._run_with_retries(step, context)
        except StepExecutionError as exc:
            if step.priority == StepPriority.CRITICAL:
                execution.errors.append(exc.message)
                logger.error(
                    "Critical step '%s' failed, aborting plan", step.id,
                    extra={"plan_id": context.plan.id, "step_id": step.id, "attempt": exc.attempts},
                )
                raise
            execution.warnings.append(exc.message)
            logger.warning("Non-critical step '%s' failed: %s", step.id, exc.message)
            self.observability.add_breadcrumb(
                f"Recovery step {step.id} failed",
                category="recovery",
                level="warning",
                data={"plan_id": context.plan.id, "attempts": exc.attempts},
            )
            return
        execution.executed.append(step.id)

    @staticmethod
    def _skip_reason(step: RecoveryStep, context: StepContext) -> Optional[str]:
        if step.type != StepType.DATA_RESTORE or step.domain is None:
            return None
        if not context.options.includes(step.domain):
            return f"{step.domain.value} not selected for restore"
        if step.domain.value not in context.snapshot.data:
            return f"snapshot has no {step.domain.value} data"
        return None

    def _run_with_retries(self, step: RecoveryStep, context: StepContext) -> None:
        handler = self._handlers[step.type]
        max_attempts = max(step.retry_count, 0) + 1
        last_error = "unknown error"

        for attempt in range(max_attempts):
            try:
                self._call_with_timeout(handler, step, context)
                logger.debug("Step '%s' succeeded on attempt %d", step.id, attempt + 1)
                return
            except FuturesTimeoutError:
                last_error = f"timed out after {step.timeout_seconds}s"
                logger.warning(
                    "Step '%s' attempt %d %s", step.id, attempt + 1, last_error,
                    extra={"plan_id": context.plan.id, "step_id": step.id, "attempt": attempt + 1},
                )
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                logger.warning(
                    "Step '%s' attempt %d failed: %s", step.id, attempt + 1, last_error,
                    extra={"plan_id": context.plan.id, "step_id": step.id, "attempt": attempt + 1},
                )

            if attempt < max_attempts - 1:
                backoff = min(
                    self.config.retry_backoff_base ** attempt * self.config.retry_backoff_scale,
                    self.config.max_backoff_seconds,
                )
                time.sleep(backoff)

        raise StepExecutionError(step.id, last_error, attempts=max_attempts)

    @staticmethod
    def _call_with_timeout(handler: StepHandler, step: RecoveryStep, context: StepContext) -> None:
        # The worker is abandoned, not killed, when the deadline passes
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"recovery-{step.id}")
        try:
            future = executor.submit(handler, step, context)
            future.result(timeout=step.timeout_seconds)
        finally:
            executor.shutdown(wait=False)

    # ── Test mode ────────────────────────────────────────────────────

    def test_plan(self, plan: RecoveryPlan) -> RecoveryTestResult:
        """Dry-run a plan against a stub snapshot and record the result on it."""
        started = time.perf_counter()
        errors: list[str] = []
        warnings: list[str] = []
        try:
            execution = self.execute(plan, stub_snapshot(), RestoreOptions(), dry_run=True)
            warnings.extend(execution.warnings)
        except StepExecutionError as exc:
            errors.append(exc.message)
        except PlanConfigurationError as exc:
            errors.append(exc.message)
        duration = time.perf_counter() - started

        success = not errors
        estimated = plan.estimated_duration_seconds
        performance = max(0.0, 100.0 - (duration / estimated) * 100.0) if estimated > 0 else 0.0
        result = RecoveryTestResult(
            id=f"test_{uuid.uuid4().hex[:12]}",
            timestamp=self._clock(),
            duration_seconds=duration,
            success=success,
            errors=errors,
            warnings=warnings,
            data_integrity=100.0 if success else 0.0,
            performance=performance,
            user_experience=100.0 if success else 50.0,
        )
        plan.record_test_result(result)
        logger.info(
            "Tested recovery plan '%s': success=%s errors=%d warnings=%d",
            plan.id, success, len(errors), len(warnings),
        )
        return result

    # ── Handlers ─────────────────────────────────────────────────────

    def _handle_data_restore(self, step: RecoveryStep, context: StepContext) -> None:
        if step.domain is None:
            verify_structure(context.snapshot.to_dict())
            return
        payload = context.snapshot.domain(step.domain)
        if context.dry_run:
            logger.debug("Dry run: would restore %s", step.domain.value)
            return
        self.hooks.restore_domain(step.domain, payload)

    def _handle_cache_clear(self, step: RecoveryStep, context: StepContext) -> None:
        if not context.dry_run:
            self.hooks.clear_cache()

    def _handle_service_restart(self, step: RecoveryStep, context: StepContext) -> None:
        if not context.dry_run:
            self.hooks.restart_services()

    def _handle_user_notification(self, step: RecoveryStep, context: StepContext) -> None:
        if not context.dry_run:
            self.hooks.notify_users(step.description or step.name)

    def _handle_monitoring_alert(self, step: RecoveryStep, context: StepContext) -> None:
        if context.dry_run:
            return
        self.observability.add_breadcrumb(
            step.description or step.name,
            category="recovery",
            level="warning",
            data={"plan_id": context.plan.id, "step_id": step.id},
        )


# ── Built-in plans ───────────────────────────────────────────────────


def build_standard_plan() -> RecoveryPlan:
    """Full restore of every domain from a snapshot."""
    return RecoveryPlan(
        id="standard",
        name="Standard Recovery",
        description="Standard data recovery procedure",
        trigger_conditions=["data_loss", "corruption", "user_request"],
        estimated_duration_seconds=45 * 60,
        steps=[
            RecoveryStep(
                id="verify_backup",
                name="Verify Backup Integrity",
                description="Verify backup file integrity and completeness",
                type=StepType.DATA_RESTORE,
                priority=StepPriority.CRITICAL,
                timeout_seconds=300,
                retry_count=3,
            ),
            RecoveryStep(
                id="restore_user_data",
                name="Restore User Data",
                description="Restore user profiles",
                priority=StepPriority.HIGH,
                timeout_seconds=600,
                retry_count=2,
                dependencies=["verify_backup"],
                domain=DataDomain.USERS,
            ),
            RecoveryStep(
                id="restore_communication_data",
                name="Restore Communication Data",
                description="Restore communication pages and buttons",
                priority=StepPriority.HIGH,
                timeout_seconds=900,
                retry_count=2,
                dependencies=["restore_user_data"],
                domain=DataDomain.COMMUNICATION,
            ),
            RecoveryStep(
                id="restore_progress_data",
                name="Restore Progress Data",
                description="Restore therapy progress and analytics",
                priority=StepPriority.MEDIUM,
                timeout_seconds=600,
                retry_count=1,
                dependencies=["restore_communication_data"],
                domain=DataDomain.PROGRESS,
            ),
            RecoveryStep(
                id="restore_settings",
                name="Restore Settings",
                description="Restore application settings",
                priority=StepPriority.MEDIUM,
                timeout_seconds=120,
                retry_count=1,
                dependencies=["restore_user_data"],
                domain=DataDomain.SETTINGS,
            ),
            RecoveryStep(
                id="clear_cache",
                name="Clear Cache",
                description="Clear application cache to ensure fresh data",
                type=StepType.CACHE_CLEAR,
                priority=StepPriority.MEDIUM,
                timeout_seconds=60,
                retry_count=1,
                dependencies=["restore_progress_data", "restore_settings"],
            ),
            RecoveryStep(
                id="restart_services",
                name="Restart Services",
                description="Restart background services",
                type=StepType.SERVICE_RESTART,
                priority=StepPriority.LOW,
                timeout_seconds=120,
                retry_count=1,
                dependencies=["clear_cache"],
            ),
            RecoveryStep(
                id="notify_users",
                name="Notify Users",
                description="Your data has been restored from backup",
                type=StepType.USER_NOTIFICATION,
                priority=StepPriority.LOW,
                timeout_seconds=30,
                retry_count=1,
                dependencies=["restart_services"],
            ),
        ],
    )


def build_cache_reset_plan() -> RecoveryPlan:
    """Reset caches and services without touching stored data."""
    return RecoveryPlan(
        id="cache_reset",
        name="Cache Reset",
        description="Clear caches and restart services after a degraded state",
        trigger_conditions=["stale_cache", "service_failure"],
        estimated_duration_seconds=5 * 60,
        steps=[
            RecoveryStep(
                id="clear_cache",
                name="Clear Cache",
                type=StepType.CACHE_CLEAR,
                priority=StepPriority.HIGH,
                timeout_seconds=60,
                retry_count=1,
            ),
            RecoveryStep(
                id="restart_services",
                name="Restart Services",
                type=StepType.SERVICE_RESTART,
                priority=StepPriority.MEDIUM,
                timeout_seconds=120,
                retry_count=1,
                dependencies=["clear_cache"],
            ),
            RecoveryStep(
                id="alert_monitoring",
                name="Alert Monitoring",
                description="Cache reset recovery plan executed",
                type=StepType.MONITORING_ALERT,
                priority=StepPriority.LOW,
                timeout_seconds=30,
                dependencies=["restart_services"],
            ),
        ],
    )


def default_plans() -> list[RecoveryPlan]:
    return [build_standard_plan(), build_cache_reset_plan()]
