"""Per-connection live subscription session used by the ``/live`` websocket."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.access import (
    AccessLevel,
    AuthContext,
    CallerContext,
    access_level,
    require_tenant,
)
from clinicflow.core.exceptions import (
    AppException,
    StoreUnavailableException,
    ValidationException,
)
from clinicflow.core.observable import Observable, Subscription
from clinicflow.schemas.access import AccessStateResponse
from clinicflow.services.auth_service import validate_access_token
from clinicflow.services.auth_state import AccountStream, AuthStateWatcher
from clinicflow.services.context_service import ContextService
from clinicflow.services.medical_record_service import MedicalRecordService
from clinicflow.services.patient_service import PatientService

logger = structlog.get_logger(__name__)

STREAMS = ("patients", "members", "records")

Send = Callable[[dict[str, Any]], Awaitable[None]]


def _serialize(data: Any) -> Any:
    if isinstance(data, list):
        return [_serialize(item) for item in data]
    if hasattr(data, "model_dump"):
        return data.model_dump(mode="json")
    return data


class LiveSession:
    """Routes client messages to observables and queues pushed snapshots.

    Observer callbacks are synchronous; they only enqueue messages and a
    single sender task writes them to the connection in order.
    """

    def __init__(
        self,
        send: Send,
        session_factory: Callable[[], AsyncSession],
        contexts: ContextService,
    ):
        self._send = send
        self._session_factory = session_factory
        self.contexts = contexts
        self.patients = PatientService(contexts.feed)
        self.records = MedicalRecordService(contexts.feed)

        self.accounts = AccountStream()
        self.ctx = CallerContext(auth=AuthContext())
        self._streams: dict[str, Subscription] = {}
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._sender: asyncio.Task[None] | None = None
        self._watch: Subscription | None = None

    async def start(self) -> None:
        """Begin delivering messages and follow the account stream."""
        self._sender = asyncio.get_running_loop().create_task(self._drain())
        watcher = AuthStateWatcher(
            self.accounts,
            lambda account: self.contexts.observe_caller(self._session_factory, account),
        )
        self._watch = watcher.subscribe(self._on_state, self._on_error)

    async def close(self) -> None:
        """Tear down every subscription opened on this connection."""
        if self._watch is not None:
            self._watch.unsubscribe()
            self._watch = None
        self._close_streams()
        if self._sender is not None:
            await self._queue.put(None)
            await self._sender
            self._sender = None

    async def flush(self) -> None:
        """Wait until every queued message was sent."""
        await self._queue.join()

    async def _drain(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                if message is None:
                    return
                await self._send(message)
            finally:
                self._queue.task_done()

    def _push(self, message: dict[str, Any]) -> None:
        self._queue.put_nowait(message)

    def _on_error(self, exc: Exception) -> None:
        category = exc.category if isinstance(exc, AppException) else "transient"
        message = exc.message if isinstance(exc, AppException) else "Live update failed"
        self._push({"type": "error", "category": category, "message": message})

    def reject(self, reason: str) -> None:
        """Report a client frame that could not be parsed."""
        self._on_error(ValidationException(reason))

    def _on_state(self, ctx: CallerContext) -> None:
        if (
            ctx.tenant_id != self.ctx.tenant_id
            or ctx.account_id != self.ctx.account_id
            or access_level(ctx.auth) != AccessLevel.AUTHENTICATED_ACTIVE
        ):
            # Tenant-scoped streams only live while the caller may read that tenant
            self._close_streams()
        self.ctx = ctx
        state = AccessStateResponse.from_context(ctx).model_dump(mode="json")
        self._push({"type": "access", **state})

    def _close_streams(self) -> None:
        streams, self._streams = self._streams, {}
        for subscription in streams.values():
            subscription.unsubscribe()

    async def handle(self, message: dict[str, Any]) -> None:
        """Process one client message; failures are reported, not raised."""
        try:
            await self._dispatch(message)
        except AppException as e:
            self._on_error(e)
        except DBAPIError as e:
            logger.warning("live_store_failure", error=str(e))
            self._on_error(StoreUnavailableException())

    async def _dispatch(self, message: dict[str, Any]) -> None:
        kind = message.get("type")

        if kind == "auth":
            account = validate_access_token(str(message.get("access_token", "")))
            if account is None:
                self.accounts.sign_out()
                raise ValidationException("Invalid access token")
            self.accounts.sign_in(account)
            return

        if kind == "sign_out":
            self.accounts.sign_out()
            return

        if kind == "subscribe":
            await self._subscribe(message.get("stream"), message.get("patient_id"))
            return

        if kind == "unsubscribe":
            key = self._key(message.get("stream"), message.get("patient_id"))
            subscription = self._streams.pop(key, None)
            if subscription is not None:
                subscription.unsubscribe()
            return

        raise ValidationException(f"Unknown message type: {kind}")

    @staticmethod
    def _key(stream: str | None, patient_id: str | None) -> str:
        return f"records:{patient_id}" if stream == "records" else str(stream)

    async def _subscribe(self, stream: str | None, patient_id: str | None) -> None:
        if stream not in STREAMS:
            raise ValidationException(f"Unknown stream: {stream}")

        ctx = await self._fresh_context()
        tenant_id = require_tenant(ctx)

        source: Observable[Any]
        if stream == "patients":
            source = self.patients.observe(self._session_factory, tenant_id)
        elif stream == "members":
            source = self.contexts.tenants.observe_members(self._session_factory, tenant_id)
        else:
            if not patient_id:
                raise ValidationException("patient_id is required for the records stream")
            async with self._session_factory() as session:
                await self.patients.get_patient(session, ctx, patient_id)
            source = self.records.observe(self._session_factory, tenant_id, patient_id)

        key = self._key(stream, patient_id)
        previous = self._streams.pop(key, None)
        if previous is not None:
            previous.unsubscribe()

        def on_snapshot(data: Any) -> None:
            message = {"type": "snapshot", "stream": stream, "data": _serialize(data)}
            if stream == "records":
                message["patient_id"] = patient_id
            self._push(message)

        self._streams[key] = source.subscribe(on_snapshot, self._on_error)

    async def _fresh_context(self) -> CallerContext:
        async with self._session_factory() as session:
            return await self.contexts.load_caller_context(
                session, self.accounts.current, fresh=True
            )
