"""Operation Context Management.

Thread-safe operation context using contextvars for binding operation
IDs, correlation IDs, user IDs and backup IDs to log entries.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


_operation_id_var: ContextVar[str] = ContextVar("operation_id", default="")
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
_user_id_var: ContextVar[str] = ContextVar("user_id", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def generate_operation_id() -> str:
    """Generate a unique operation ID using UUID4."""
    return str(uuid.uuid4())


def get_operation_id() -> str:
    """Get the current operation ID from context."""
    return _operation_id_var.get()


def get_correlation_id() -> str:
    """Get the current correlation ID from context."""
    return _correlation_id_var.get()


def get_user_id() -> str:
    """Get the current user ID from context."""
    return _user_id_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all context variables as a dictionary for log binding."""
    ctx = {}
    op_id = _operation_id_var.get()
    if op_id:
        ctx["operation_id"] = op_id
    corr_id = _correlation_id_var.get()
    if corr_id:
        ctx["correlation_id"] = corr_id
    user_id = _user_id_var.get()
    if user_id:
        ctx["user_id"] = user_id
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class OperationContext:
    """Context manager for operation-scoped logging context.

    Binds operation_id, user_id and correlation_id (plus any extra
    fields such as ``backup_id``) to all log entries emitted inside
    the block. The previous context is restored on exit, so contexts
    nest.

    Example:
        with OperationContext(extra={"operation": "restore"}) as ctx:
            ctx.bind(backup_id="backup_20240101020000_ab12cd34")
            logger.info("loading snapshot")
    """

    operation_id: str = ""
    correlation_id: str = ""
    user_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _tokens: list = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.operation_id:
            self.operation_id = generate_operation_id()
        if not self.correlation_id:
            self.correlation_id = self.operation_id

    def __enter__(self) -> "OperationContext":
        self._tokens = [
            (_operation_id_var, _operation_id_var.set(self.operation_id)),
            (_correlation_id_var, _correlation_id_var.set(self.correlation_id)),
            (_user_id_var, _user_id_var.set(self.user_id)),
            (_extra_context_var, _extra_context_var.set(self.extra.copy())),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since context was created."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    def bind(self, **kwargs: Any) -> None:
        """Add extra key-value pairs to the context."""
        current = _extra_context_var.get()
        _extra_context_var.set({**current, **kwargs})
        self.extra.update(kwargs)
