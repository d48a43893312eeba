"""
Ambient credentials read from configuration.

EnvironmentCredentialProvider builds the process-wide default credential from
Settings: TLS roots (or an insecure connection for local development) plus an
optional pre-issued bearer token. The credential records the scopes and the
self-signed JWT preference the channel pool applies to it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import grpc
from loguru import logger
from pydantic import BaseModel

from callgate_core.config import Settings, settings
from callgate_core.runtime.errors import CredentialsUnavailableError


class EnvironmentCredential(BaseModel):
    """Credential assembled from configuration.

    Attributes:
        insecure: Connect without TLS (local development only).
        access_token: Bearer token attached to every call, if any.
        root_certificates: PEM roots; None uses the transport's defaults.
        scoped: Whether the credential needs explicit scopes.
        scopes: Scopes applied so far.
        use_jwt_access_with_scopes: Prefer self-signed JWTs when scoped.
    """

    insecure: bool = False
    access_token: str | None = None
    root_certificates: bytes | None = None
    scoped: bool = False
    scopes: tuple[str, ...] = ()
    use_jwt_access_with_scopes: bool = False

    model_config = {"frozen": True}

    @property
    def requires_scoping(self) -> bool:
        return self.scoped and not self.scopes

    def with_scopes(self, scopes: Iterable[str]) -> "EnvironmentCredential":
        return self.model_copy(update={"scopes": tuple(scopes)})

    def with_jwt_access(self, use_jwt_access_with_scopes: bool) -> "EnvironmentCredential":
        return self.model_copy(update={"use_jwt_access_with_scopes": use_jwt_access_with_scopes})

    def to_channel_credentials(self) -> grpc.ChannelCredentials | None:
        """Build grpc channel credentials.

        Returns:
            Composite TLS + bearer token credentials, TLS-only credentials,
            or None for an insecure channel.
        """
        if self.insecure:
            if self.access_token:
                logger.warning("Ignoring access token on an insecure channel")
            return None
        channel_credentials = grpc.ssl_channel_credentials(root_certificates=self.root_certificates)
        if not self.access_token:
            return channel_credentials
        return grpc.composite_channel_credentials(
            channel_credentials,
            grpc.access_token_call_credentials(self.access_token),
        )


class EnvironmentCredentialProvider:
    """CredentialProvider reading CALLGATE_CREDENTIALS_* settings."""

    def __init__(self, config: Settings | None = None):
        self._config = config or settings

    def get_ambient_credential(self) -> EnvironmentCredential:
        """
        Build the ambient credential.

        Returns:
            EnvironmentCredential: The configured credential.

        Raises:
            CredentialsUnavailableError: If the root certificate file cannot be read.
        """
        config = self._config
        root_certificates = None
        if not config.CREDENTIALS_INSECURE and config.CREDENTIALS_ROOT_CERTIFICATES:
            path = Path(config.CREDENTIALS_ROOT_CERTIFICATES)
            try:
                root_certificates = path.read_bytes()
            except OSError as e:
                raise CredentialsUnavailableError(
                    message_safe="Root certificates could not be read",
                    message_debug=f"{path}: {e}",
                    cause=e,
                ) from e

        credential = EnvironmentCredential(
            insecure=config.CREDENTIALS_INSECURE,
            access_token=config.CREDENTIALS_ACCESS_TOKEN,
            root_certificates=root_certificates,
            scoped=config.CREDENTIALS_SCOPED,
            use_jwt_access_with_scopes=config.CREDENTIALS_USE_JWT_ACCESS,
        )
        logger.info(
            f"Loaded ambient credential (insecure={credential.insecure}, "
            f"token={'yes' if credential.access_token else 'no'}, scoped={credential.scoped})"
        )
        return credential
