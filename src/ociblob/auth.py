"""Credential providers for the OCI Object Storage client.

The auth mode is a closed set of strategies. Each strategy validates the
fields it needs and then builds the SDK client configuration together with a
request signer:

- ``UserPrincipal``: API signing key of an IAM user.
- ``InstancePrincipal``: identity of the compute instance we run on.
- ``WorkloadPrincipal``: OKE workload identity of the pod we run in.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import oci

from ociblob.config import (
    OCI_FINGERPRINT_ENV_VAR,
    OCI_KEY_FILE_ENV_VAR,
    OCI_REGION_ENV_VAR,
    OCI_TENANCY_ENV_VAR,
    OCI_USER_ENV_VAR,
    AuthMode,
    OCIConfig,
)
from ociblob.errors import ConfigurationError, MissingFieldError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """Client configuration and signer handed to the SDK client."""

    config: dict[str, Any]
    signer: Any


class CredentialProvider(Protocol):
    """Builds Credentials for one auth mode."""

    def validate(self) -> None:
        """Raise MissingFieldError if a required field is empty."""
        ...

    def credentials(self) -> Credentials:
        """Exchange the configured identity for a signer."""
        ...


@dataclass(frozen=True)
class UserPrincipal:
    """API key authentication of an IAM user."""

    cfg: OCIConfig

    def validate(self) -> None:
        required = [
            ("tenancy_id", OCI_TENANCY_ENV_VAR),
            ("user_id", OCI_USER_ENV_VAR),
            ("fingerprint", OCI_FINGERPRINT_ENV_VAR),
            ("region", OCI_REGION_ENV_VAR),
        ]
        for field, env_var in required:
            if not getattr(self.cfg, field):
                raise MissingFieldError(field, env_var)
        if self.cfg.private_key is None and not self.cfg.private_key_file:
            raise MissingFieldError("private_key_file", OCI_KEY_FILE_ENV_VAR)

    def _private_key(self) -> str:
        if self.cfg.private_key is not None:
            return self.cfg.private_key.get_secret_value()
        try:
            return Path(self.cfg.private_key_file).expanduser().read_text()
        except OSError as e:
            raise ConfigurationError(
                f"unable to read private key file {self.cfg.private_key_file}: {e}"
            ) from e

    def credentials(self) -> Credentials:
        self.validate()
        passphrase = (
            self.cfg.passphrase.get_secret_value() if self.cfg.passphrase else None
        )
        private_key = self._private_key()
        config = {
            "tenancy": self.cfg.tenancy_id,
            "user": self.cfg.user_id,
            "fingerprint": self.cfg.fingerprint,
            "key_file": self.cfg.private_key_file or None,
            "pass_phrase": passphrase,
            "region": self.cfg.region,
        }
        if self.cfg.private_key is not None:
            config["key_content"] = private_key
        try:
            signer = oci.signer.Signer(
                tenancy=self.cfg.tenancy_id,
                user=self.cfg.user_id,
                fingerprint=self.cfg.fingerprint,
                private_key_file_location=self.cfg.private_key_file or None,
                pass_phrase=passphrase,
                private_key_content=private_key,
            )
        except oci.exceptions.ClientError as e:
            raise ConfigurationError(f"unable to load private key: {e}") from e
        return Credentials(config=config, signer=signer)


@dataclass(frozen=True)
class InstancePrincipal:
    """Authentication as the compute instance (dynamic group member)."""

    cfg: OCIConfig

    def validate(self) -> None:
        # Identity and region both come from the instance metadata service.
        return None

    def credentials(self) -> Credentials:
        self.validate()
        try:
            signer = oci.auth.signers.InstancePrincipalsSecurityTokenSigner()
        except Exception as e:
            raise ConfigurationError(
                f"unable to obtain instance principal credentials: {e}"
            ) from e
        region = self.cfg.region or getattr(signer, "region", "")
        return Credentials(config={"region": region}, signer=signer)


@dataclass(frozen=True)
class WorkloadPrincipal:
    """Authentication as an OKE workload (Kubernetes service account)."""

    cfg: OCIConfig

    def validate(self) -> None:
        if not self.cfg.region:
            raise MissingFieldError("region", OCI_REGION_ENV_VAR)

    def credentials(self) -> Credentials:
        self.validate()
        try:
            signer = oci.auth.signers.get_oke_workload_identity_resource_principal_signer()
        except Exception as e:
            raise ConfigurationError(
                f"unable to obtain workload identity credentials: {e}"
            ) from e
        return Credentials(config={"region": self.cfg.region}, signer=signer)


def credential_provider(cfg: OCIConfig) -> CredentialProvider:
    """Select the credential strategy for the configured auth mode."""
    mode = cfg.effective_auth_mode
    logger.debug("Using %s authentication", mode.value)
    match mode:
        case AuthMode.USER_PRINCIPAL:
            return UserPrincipal(cfg)
        case AuthMode.INSTANCE_PRINCIPAL:
            return InstancePrincipal(cfg)
        case AuthMode.WORKLOAD_PRINCIPAL:
            return WorkloadPrincipal(cfg)
    raise ConfigurationError(f"unsupported auth mode {mode!r}")
