"""
Call runtime layer for callgate.

This package binds raw RPC invocation functions to per-call configuration:
- CallSettings: Mergeable deadline, cancellation, headers, user agent, retry
- ApiCall: Call bridge with sync/async entry points and decorator stages
- RetryPolicy: Bounded, clock-driven exponential backoff
- Clock / Scheduler: Time and suspension abstractions
- ServiceError: Error taxonomy with gRPC status codes
"""

from .api_call import ApiCall, CallStage, RetryStage, TransportStage, UserAgentStage
from .cancellation import CancellationToken, LinkedCancellationToken, with_cancellation
from .clock import SYSTEM_CLOCK, Clock, SystemClock
from .errors import (
    CallCancelledError,
    ConfigurationError,
    CredentialsUnavailableError,
    DeadlineExceededError,
    RetryableError,
    ServiceError,
    TerminalError,
    status_code_of,
)
from .lazy import Lazy
from .retry import DEFAULT_RETRY_POLICY, RetryPolicy
from .scheduler import SYSTEM_SCHEDULER, Scheduler, SystemScheduler
from .settings import CallOptions, CallSettings, Expiration, merge

__all__ = [
    "ApiCall",
    "CallStage",
    "RetryStage",
    "TransportStage",
    "UserAgentStage",
    "CancellationToken",
    "LinkedCancellationToken",
    "with_cancellation",
    "Clock",
    "SystemClock",
    "SYSTEM_CLOCK",
    "CallCancelledError",
    "ConfigurationError",
    "CredentialsUnavailableError",
    "DeadlineExceededError",
    "RetryableError",
    "ServiceError",
    "TerminalError",
    "status_code_of",
    "Lazy",
    "DEFAULT_RETRY_POLICY",
    "RetryPolicy",
    "Scheduler",
    "SystemScheduler",
    "SYSTEM_SCHEDULER",
    "CallOptions",
    "CallSettings",
    "Expiration",
    "merge",
]
