"""Service composition helpers."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy.engine import Engine

from ..auth.session_provider import SessionProvider, TokenSessionProvider
from ..config import SyncConfig
from ..context import AppContext
from ..db.db_init import create_local_engine, init_db
from ..infrastructure.functions_client import FunctionsClient
from ..infrastructure.kv_store import KeyValueStore, SqlAlchemyKeyValueStore
from ..infrastructure.rest_client import RestClient
from ..infrastructure.storage_client import StorageClient
from ..lifecycle import AppLifecycle
from ..media.media_upload_service import MediaUploadService
from ..media.signed_url_cache import SignedUrlCache
from ..sync.cancellation import CancellationToken
from ..sync.counters import OptimisticMutationCoordinator
from ..sync.retry_scheduler import RetryScheduler
from ..sync.write_queue import OfflineWriteQueue, SendFunction, Validator
from ..targets.targets_service import TargetsService

_ENGINE_CACHE: dict[str, Engine] = {}


def _get_engine(url: str) -> Engine:
    engine = _ENGINE_CACHE.get(url)
    if engine is None:
        engine = create_local_engine(url)
        _ENGINE_CACHE[url] = engine
    return engine


def _coerce_config(config: Mapping[str, Any] | SyncConfig | None) -> SyncConfig:
    if isinstance(config, SyncConfig):
        return config
    if isinstance(config, Mapping):
        return SyncConfig(**dict(config))
    return SyncConfig.build_default()


@dataclass(slots=True)
class SyncServices:
    """Every sync component, wired against one configuration."""

    config: SyncConfig
    session: SessionProvider
    lifecycle: AppLifecycle
    context: AppContext
    rest: RestClient
    storage: StorageClient
    functions: FunctionsClient
    kv_store: KeyValueStore
    signed_urls: SignedUrlCache
    counters: OptimisticMutationCoordinator
    uploads: MediaUploadService
    targets: TargetsService
    clock: Callable[[], datetime] | None = None

    def retry_scheduler(
        self,
        operation: Callable[[], Awaitable[Any]],
        *,
        name: str = "refresh",
        on_success: Callable[[Any], Any] | None = None,
        on_exhausted: Callable[[Any], Any] | None = None,
        cancel_token: CancellationToken | None = None,
        sleep: Callable[[float], Any] | None = None,
    ) -> RetryScheduler[Any]:
        """Build a scheduler using the configured backoff policy."""

        return RetryScheduler(
            operation,
            name=name,
            base_delay_ms=self.config.retry_base_delay_ms,
            cap_ms=self.config.retry_cap_ms,
            max_attempts=self.config.retry_max_attempts,
            on_success=on_success,
            on_exhausted=on_exhausted,
            cancel_token=cancel_token,
            sleep=sleep,
        )

    def write_queue(
        self,
        form_key: str,
        send: SendFunction,
        *,
        validate: Validator | None = None,
    ) -> OfflineWriteQueue:
        """Build a write queue replaying on foreground transitions."""

        return OfflineWriteQueue(
            form_key=form_key,
            send=send,
            store=self.kv_store,
            validate=validate,
            cooldown=self.config.save_cooldown,
            clock=self.clock,
            lifecycle=self.lifecycle,
        )

    def close(self) -> None:
        self.targets.close()


def build_sync_services(
    config: Mapping[str, Any] | SyncConfig | None = None,
    *,
    session_provider: SessionProvider | None = None,
    kv_store: KeyValueStore | None = None,
    rest_client: RestClient | None = None,
    storage_client: StorageClient | None = None,
    functions_client: FunctionsClient | None = None,
    clock: Callable[[], datetime] | None = None,
) -> SyncServices:
    """Construct :class:`SyncServices` from configuration.

    Collaborators passed explicitly replace the default ones, which lets tests
    substitute clocks, stores and backend clients.
    """

    sync_config = _coerce_config(config)
    session = session_provider or TokenSessionProvider(jwt_secret=sync_config.jwt_secret)
    if kv_store is None:
        session_factory = init_db(_get_engine(sync_config.local_store_url))
        kv_store = SqlAlchemyKeyValueStore(session_factory)

    backend = {
        "base_url": sync_config.backend_url,
        "anon_key": sync_config.anon_key,
        "timeout_seconds": sync_config.request_timeout_seconds,
    }
    rest = rest_client or RestClient(**backend)
    storage = storage_client or StorageClient(**backend, bucket=sync_config.media_bucket)
    functions = functions_client or FunctionsClient(**backend)

    lifecycle = AppLifecycle()
    signed_urls = SignedUrlCache(
        bucket=sync_config.media_bucket,
        session=session,
        direct_signer=storage,
        functions=functions,
        function_name=sync_config.signing_function,
        allow_direct_fallback=sync_config.allow_direct_sign_fallback,
        grant=sync_config.signed_url_grant,
        safety_margin=sync_config.signed_url_safety_margin,
        clock=clock,
    )
    counters = OptimisticMutationCoordinator(
        store=rest,
        session=session,
        table=sync_config.counters_table,
    )
    upload_kwargs: dict[str, Any] = {"folder": sync_config.upload_folder}
    if clock is not None:
        upload_kwargs["clock"] = clock
    uploads = MediaUploadService(storage=storage, session=session, **upload_kwargs)
    targets = TargetsService(
        store=rest,
        session=session,
        kv_store=kv_store,
        table=sync_config.targets_table,
        cooldown=sync_config.save_cooldown,
        clock=clock,
        lifecycle=lifecycle,
    )
    return SyncServices(
        config=sync_config,
        session=session,
        lifecycle=lifecycle,
        context=AppContext(),
        rest=rest,
        storage=storage,
        functions=functions,
        kv_store=kv_store,
        signed_urls=signed_urls,
        counters=counters,
        uploads=uploads,
        targets=targets,
        clock=clock,
    )


__all__ = ["SyncServices", "build_sync_services"]
