"""
Pool of long-lived channels shared by service clients.

A ChannelPool hands out one channel per distinct (transport adapter,
endpoint, channel options) and resolves the ambient credential once for all
of them. It is thread-safe and may be used from threads and event loops at
the same time.
"""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterable

from loguru import logger

from callgate_core.domain.interfaces import Channel, CredentialProvider, TransportAdapter
from callgate_core.runtime.cancellation import CancellationToken, with_cancellation
from callgate_core.runtime.errors import ConfigurationError
from callgate_core.runtime.lazy import Lazy

from .credentials import EnvironmentCredentialProvider
from .grpc_adapter import ChannelOptions


@dataclass(frozen=True)
class ChannelKey:
    """Identity of a pooled channel. Equal iff all three parts are equal."""

    adapter: TransportAdapter
    endpoint: str
    options: ChannelOptions | None


class ChannelPool:
    """
    Channels for one service, possibly at several endpoints.

    Each key has a single channel. All channels use the ambient credential,
    scoped with this pool's scopes when the credential requires it.
    Credential resolution runs once, on a worker thread, the first time any
    channel is requested; its result (or failure) is cached for the
    lifetime of the pool.

    Usage:
        pool = ChannelPool(["https://example.com/auth/cloud-platform"])
        channel = pool.get_channel(GRPC_ADAPTER, "api.example.com:443")
        stub = ThingServiceStub(channel.grpc_channel)
        ...
        await pool.shutdown_channels_async()
    """

    def __init__(
        self,
        scopes: Iterable[str],
        use_jwt_with_scopes: bool = False,
        credential_provider: CredentialProvider | None = None,
    ):
        """
        Create a pool. No credentials are resolved yet.

        Args:
            scopes: Scopes to apply to the ambient credential if it needs
                any. Copied; must not be None or contain None. May be empty.
            use_jwt_with_scopes: Prefer self-signed JWTs over OAuth tokens
                when scopes are set explicitly.
            credential_provider: Source of the ambient credential. Defaults
                to EnvironmentCredentialProvider.

        Raises:
            ConfigurationError: If scopes is None, a plain string, or has None entries.
        """
        if scopes is None:
            raise ConfigurationError("scopes must not be None")
        if isinstance(scopes, str):
            raise ConfigurationError("scopes must be a collection of strings, not a string")
        # Always take a copy, then check the copy
        self._scopes: tuple[str, ...] = tuple(scopes)
        if any(scope is None for scope in self._scopes):
            raise ConfigurationError("Scopes must not contain any None entries")

        self.use_jwt_access_with_scopes = use_jwt_with_scopes
        self._credential_provider = credential_provider or EnvironmentCredentialProvider()
        self._credentials: Lazy[Future] = Lazy(self._start_credential_resolution)

        self._channels: dict[ChannelKey, Channel] = {}
        self._lock = threading.Lock()

    @property
    def scopes(self) -> tuple[str, ...]:
        return self._scopes

    def _start_credential_resolution(self) -> Future:
        # Resolution runs off the caller's thread, so get_channel can block on
        # it even from a thread that an async resolution would need.
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="callgate-credentials")
        try:
            return executor.submit(self._create_channel_credentials_uncached)
        finally:
            executor.shutdown(wait=False)

    def _create_channel_credentials_uncached(self) -> Any:
        try:
            credential = self._credential_provider.get_ambient_credential()
            if credential.requires_scoping:
                credential = credential.with_scopes(self._scopes)
            if credential.use_jwt_access_with_scopes != self.use_jwt_access_with_scopes:
                credential = credential.with_jwt_access(self.use_jwt_access_with_scopes)
            channel_credentials = credential.to_channel_credentials()
        except Exception:
            logger.exception("Failed to resolve default channel credentials")
            raise
        logger.info(f"Resolved default channel credentials (scopes={list(self._scopes)})")
        return channel_credentials

    def get_channel(
        self,
        adapter: TransportAdapter,
        endpoint: str,
        options: ChannelOptions | None = None,
    ) -> Channel:
        """
        Return the pooled channel for endpoint, creating it if needed.

        Blocks until credentials are resolved.

        Args:
            adapter: The transport implementation to use. Must not be None.
            endpoint: The endpoint to connect to. Must not be None.
            options: Channel options to apply, and only those. May be None.

        Returns:
            Channel: The channel for this adapter, endpoint and options.

        Raises:
            ConfigurationError: If adapter or endpoint is None.
            Exception: Whatever credential resolution or channel creation raised.
        """
        self._check_arguments(adapter, endpoint)
        credentials = self._credentials.get().result()
        return self._get_or_create(adapter, endpoint, options, credentials)

    async def get_channel_async(
        self,
        adapter: TransportAdapter,
        endpoint: str,
        options: ChannelOptions | None = None,
        cancellation: CancellationToken | None = None,
    ) -> Channel:
        """
        Return the pooled channel for endpoint without blocking the event loop.

        Cancellation stops this caller waiting for credentials; the shared
        resolution carries on for other callers.

        Raises:
            ConfigurationError: If adapter or endpoint is None.
            CallCancelledError: If cancellation fires first.
        """
        self._check_arguments(adapter, endpoint)
        resolution = asyncio.shield(asyncio.wrap_future(self._credentials.get()))
        credentials = await with_cancellation(resolution, cancellation)
        return self._get_or_create(adapter, endpoint, options, credentials)

    async def shutdown_channels_async(self) -> None:
        """
        Shut down every channel allocated so far.

        The pool stays usable: later requests get new channels. Completes
        once all of the old channels have finished shutting down.
        """
        with self._lock:
            channels = list(self._channels.values())
            self._channels = {}
        if not channels:
            return

        logger.info(f"Shutting down {len(channels)} pooled channel(s)")
        results = await asyncio.gather(
            *(channel.shutdown() for channel in channels),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.error(f"{len(failures)} channel(s) failed to shut down cleanly")
            raise failures[0]

    def _get_or_create(
        self,
        adapter: TransportAdapter,
        endpoint: str,
        options: ChannelOptions | None,
        credentials: Any,
    ) -> Channel:
        key = ChannelKey(adapter, endpoint, options)
        with self._lock:
            channel = self._channels.get(key)
            if channel is None:
                channel = adapter.create_channel(endpoint, credentials, options)
                self._channels[key] = channel
                logger.debug(f"Created pooled channel to {endpoint} via {type(adapter).__name__}")
            return channel

    @staticmethod
    def _check_arguments(adapter: TransportAdapter, endpoint: str) -> None:
        if adapter is None:
            raise ConfigurationError("adapter must not be None")
        if endpoint is None:
            raise ConfigurationError("endpoint must not be None")

    def __repr__(self) -> str:
        return f"ChannelPool(scopes={list(self._scopes)}, channels={len(self._channels)})"
