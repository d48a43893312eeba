"""
Transport-facing infrastructure: channel pooling, gRPC adapters and credentials.
"""

from .channel_pool import ChannelKey, ChannelPool
from .credentials import EnvironmentCredential, EnvironmentCredentialProvider
from .grpc_adapter import (
    GRPC_ADAPTER,
    GRPC_AIO_ADAPTER,
    ChannelOptions,
    GrpcAdapter,
    GrpcAioAdapter,
)
from .grpc_calls import unary_async_call, unary_sync_call

__all__ = [
    "ChannelKey",
    "ChannelPool",
    "EnvironmentCredential",
    "EnvironmentCredentialProvider",
    "ChannelOptions",
    "GrpcAdapter",
    "GrpcAioAdapter",
    "GRPC_ADAPTER",
    "GRPC_AIO_ADAPTER",
    "unary_async_call",
    "unary_sync_call",
]
