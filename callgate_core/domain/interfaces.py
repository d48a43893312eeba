"""
Collaborator interfaces (Protocols) for callgate.

This module defines the contracts the call bridge and channel pool rely on
but do not implement themselves. These protocols enable:
- Plugging in other transports and credential sources
- Easy faking in tests
- Clear boundaries between orchestration and transport
"""

from typing import Any, Iterable, Protocol, runtime_checkable


@runtime_checkable
class Channel(Protocol):
    """A long-lived connection to one endpoint."""

    endpoint: str

    @property
    def grpc_channel(self) -> Any:
        """The underlying transport channel handed to generated stubs."""
        ...

    async def shutdown(self) -> None:
        """Close the channel, completing when in-flight shutdown work is done."""
        ...


@runtime_checkable
class TransportAdapter(Protocol):
    """Creates channels for one transport implementation.

    Adapters are part of the channel pool's cache key, so equal adapters
    must hash equally.
    """

    def create_channel(self, endpoint: str, credentials: Any, options: Any) -> Channel:
        """
        Open a channel.

        Args:
            endpoint: host:port to connect to.
            credentials: Channel credentials resolved by the pool.
            options: ChannelOptions, or None for transport defaults.

        Returns:
            Channel: A new channel; the pool owns its lifetime.
        """
        ...


@runtime_checkable
class Credential(Protocol):
    """An ambient credential that can be scoped and turned into channel credentials."""

    @property
    def requires_scoping(self) -> bool:
        """Whether scopes must be applied before the credential is usable."""
        ...

    @property
    def use_jwt_access_with_scopes(self) -> bool:
        """Whether self-signed JWTs are preferred over OAuth token exchange."""
        ...

    def with_scopes(self, scopes: Iterable[str]) -> "Credential":
        ...

    def with_jwt_access(self, use_jwt_access_with_scopes: bool) -> "Credential":
        ...

    def to_channel_credentials(self) -> Any:
        """Return transport-level channel credentials."""
        ...


@runtime_checkable
class CredentialProvider(Protocol):
    """Source of the process-wide default credential."""

    def get_ambient_credential(self) -> Credential:
        """
        Fetch the ambient credential.

        Raises:
            CredentialsUnavailableError: If no credential can be built.
        """
        ...
