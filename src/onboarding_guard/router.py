"""Operation router: maps operation names to hooks and handlers.

Handlers are registered as plain functions. Each dispatch opens its own store
transaction and passes it explicitly, so nothing is shared between requests.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from onboarding_guard import handlers, validator
from onboarding_guard.config_schema import GuardConfig
from onboarding_guard.db import RecordStore, Transaction
from onboarding_guard.errors import GuardError, ValidationError

logger = logging.getLogger("onboarding_guard")

Handler = Callable[["Request", Transaction], Awaitable[dict]]
Hook = Callable[["Request", Transaction], Awaitable[None]]

CREATE = "create"
UPDATE = "update"
READ = "read"
LIST = "list"
SUBMIT_FOR_REVIEW = "SubmitForReview"
WRITE_OPERATIONS = (CREATE, UPDATE)


@dataclass
class Request:
    """One inbound operation: its name, the supplied fields, and the target id."""

    operation: str
    data: dict[str, Any] = field(default_factory=dict)
    record_id: str | None = None


class Router:
    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}
        self._before: dict[str, list[Hook]] = defaultdict(list)

    @property
    def operations(self) -> list[str]:
        return sorted(self._handlers)

    def on(self, operation: str) -> Callable[[Handler], Handler]:
        """Register the handler for *operation*. One handler per operation."""

        def _register(fn: Handler) -> Handler:
            if operation in self._handlers:
                raise ValueError(f"Handler already registered for {operation!r}")
            self._handlers[operation] = fn
            return fn

        return _register

    def before(self, *operations: str) -> Callable[[Hook], Hook]:
        """Register a hook run before the handler of each named operation."""

        def _register(fn: Hook) -> Hook:
            for operation in operations:
                self._before[operation].append(fn)
            return fn

        return _register

    async def dispatch(self, store: RecordStore, request: Request) -> dict:
        """Run hooks then the handler inside one transaction.

        GuardError rejections roll back and come back as
        {"error": message, "status": code}. Store errors roll back and propagate.
        """
        handler = self._handlers.get(request.operation)
        if handler is None:
            logger.info("dispatch -> unknown operation %r", request.operation)
            return ValidationError(f"Unknown operation: {request.operation}").to_dict()
        try:
            async with store.transaction() as tx:
                for hook in self._before.get(request.operation, ()):
                    await hook(request, tx)
                return await handler(request, tx)
        except GuardError as exc:
            logger.info(
                "%s -> rejected %s: %s",
                request.operation,
                exc.status_code,
                exc.message,
            )
            return exc.to_dict()


def build_router(config: GuardConfig | None = None) -> Router:
    """Wire the onboarding hooks and handlers."""
    config = config or GuardConfig()
    router = Router()
    router.before(*WRITE_OPERATIONS)(validator.check_write_shape)
    if config.validate_merged_updates:
        router.before(*WRITE_OPERATIONS)(validator.validate_merged_write)
    else:
        router.before(*WRITE_OPERATIONS)(validator.validate_write)
    router.on(CREATE)(handlers.create_record)
    router.on(UPDATE)(handlers.update_record)
    router.on(READ)(handlers.read_record)
    router.on(LIST)(handlers.list_records)
    router.on(SUBMIT_FOR_REVIEW)(handlers.submit_for_review)
    return router
