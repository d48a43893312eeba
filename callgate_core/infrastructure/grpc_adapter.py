"""
gRPC transport adapters for the channel pool.

Two adapters are provided: GrpcAdapter opens blocking grpc channels (for
generated sync stubs) and GrpcAioAdapter opens grpc.aio channels (for asyncio
stubs). Both take ChannelOptions, a value type whose equality is structural
so that independently built but identical options share a pooled channel.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Union

import grpc
from grpc import aio
from loguru import logger
from pydantic import BaseModel

OptionValue = Union[str, int, bool]


class ChannelOptions(BaseModel):
    """Channel arguments applied when a pooled channel is created.

    Attributes:
        max_send_message_length: Largest outbound message in bytes.
        max_receive_message_length: Largest inbound message in bytes.
        keepalive_time_ms: Interval between keepalive pings.
        keepalive_timeout_ms: Time to wait for a keepalive ack.
        primary_user_agent: Prepended to the transport's user agent.
        custom_options: Any further raw channel arguments.
    """

    max_send_message_length: int | None = None
    max_receive_message_length: int | None = None
    keepalive_time_ms: int | None = None
    keepalive_timeout_ms: int | None = None
    primary_user_agent: str | None = None
    custom_options: tuple[tuple[str, OptionValue], ...] = ()

    model_config = {"frozen": True}

    def to_grpc_options(self) -> list[tuple[str, OptionValue]]:
        """Translate to the (key, value) list grpc channel constructors take."""
        named = (
            ("grpc.max_send_message_length", self.max_send_message_length),
            ("grpc.max_receive_message_length", self.max_receive_message_length),
            ("grpc.keepalive_time_ms", self.keepalive_time_ms),
            ("grpc.keepalive_timeout_ms", self.keepalive_timeout_ms),
            ("grpc.primary_user_agent", self.primary_user_agent),
        )
        options = [(key, value) for key, value in named if value is not None]
        options.extend(self.custom_options)
        return options


def _grpc_options(options: ChannelOptions | None) -> list[tuple[str, OptionValue]]:
    return options.to_grpc_options() if options is not None else []


class GrpcChannel:
    """Pooled blocking grpc channel."""

    def __init__(self, endpoint: str, channel: grpc.Channel):
        self.endpoint = endpoint
        self._channel = channel

    @property
    def grpc_channel(self) -> grpc.Channel:
        return self._channel

    async def shutdown(self) -> None:
        # grpc.Channel.close blocks until in-flight calls are torn down
        await asyncio.to_thread(self._channel.close)
        logger.debug(f"Closed grpc channel to {self.endpoint}")

    def __repr__(self) -> str:
        return f"GrpcChannel(endpoint={self.endpoint!r})"


class GrpcAioChannel:
    """Pooled grpc.aio channel."""

    def __init__(self, endpoint: str, channel: aio.Channel):
        self.endpoint = endpoint
        self._channel = channel

    @property
    def grpc_channel(self) -> aio.Channel:
        return self._channel

    async def shutdown(self) -> None:
        await self._channel.close()
        logger.debug(f"Closed grpc.aio channel to {self.endpoint}")

    def __repr__(self) -> str:
        return f"GrpcAioChannel(endpoint={self.endpoint!r})"


@dataclass(frozen=True)
class GrpcAdapter:
    """Creates blocking grpc channels."""

    def create_channel(
        self,
        endpoint: str,
        credentials: grpc.ChannelCredentials | None,
        options: ChannelOptions | None,
    ) -> GrpcChannel:
        grpc_options = _grpc_options(options)
        if credentials is None:
            channel = grpc.insecure_channel(endpoint, options=grpc_options)
        else:
            channel = grpc.secure_channel(endpoint, credentials, options=grpc_options)
        return GrpcChannel(endpoint, channel)


@dataclass(frozen=True)
class GrpcAioAdapter:
    """Creates grpc.aio channels."""

    def create_channel(
        self,
        endpoint: str,
        credentials: grpc.ChannelCredentials | None,
        options: ChannelOptions | None,
    ) -> GrpcAioChannel:
        grpc_options = _grpc_options(options)
        if credentials is None:
            channel = aio.insecure_channel(endpoint, options=grpc_options)
        else:
            channel = aio.secure_channel(endpoint, credentials, options=grpc_options)
        return GrpcAioChannel(endpoint, channel)


GRPC_ADAPTER = GrpcAdapter()
GRPC_AIO_ADAPTER = GrpcAioAdapter()
