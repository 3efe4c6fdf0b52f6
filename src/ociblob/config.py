"""Configuration loading and Pydantic models for ociblob.

A backend is described by an ``OCIConfig``. It starts from a connection
string (``oci:bucket[/prefix]``), is overlaid with environment values by
``apply_environment()``, and is never mutated once a backend is built from it.
"""

import posixpath
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ociblob.errors import ConfigurationError

SCHEME = "oci:"

# Environment variables, optionally preceded by a caller-chosen prefix.
OCI_AUTH_ENV_VAR = "OCI_CLI_AUTH"
OCI_REGION_ENV_VAR = "OCI_REGION"
OCI_USER_ENV_VAR = "OCI_USER"
OCI_FINGERPRINT_ENV_VAR = "OCI_FINGERPRINT"
OCI_KEY_FILE_ENV_VAR = "OCI_KEY_FILE"
OCI_TENANCY_ENV_VAR = "OCI_TENANCY"
OCI_PASSPHRASE_ENV_VAR = "OCI_PASSPHRASE"
OCI_COMPARTMENT_ENV_VAR = "OCI_COMPARTMENT_OCID"

DEFAULT_CONNECTIONS = 5


class AuthMode(str, Enum):
    """How the backend authenticates against OCI."""

    USER_PRINCIPAL = "user_principal"
    INSTANCE_PRINCIPAL = "instance_principal"
    WORKLOAD_PRINCIPAL = "workload_principal"

    @classmethod
    def parse(cls, value: str) -> "AuthMode":
        """Parse an ``OCI_CLI_AUTH`` style value.

        Raises:
            ConfigurationError: If the value names no supported mode.
        """
        aliases = {
            "api_key": cls.USER_PRINCIPAL,
            "oke_workload_identity": cls.WORKLOAD_PRINCIPAL,
        }
        value = value.strip().lower()
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(f"unsupported auth mode {value!r}") from None


class OCIConfig(BaseModel):
    """Connection configuration for one OCI backend instance."""

    model_config = ConfigDict(frozen=True)

    bucket: str = ""
    prefix: str = "."
    region: str = ""
    tenancy_id: str = ""
    user_id: str = ""
    fingerprint: str = ""
    private_key_file: str = ""
    private_key: SecretStr | None = None
    passphrase: SecretStr | None = None
    compartment_id: str = ""
    auth_mode: AuthMode | None = None
    connections: int = Field(default=DEFAULT_CONNECTIONS, gt=0)
    layout: str = ""

    @property
    def effective_auth_mode(self) -> AuthMode:
        """The selected auth mode, user principal when none was chosen."""
        return self.auth_mode or AuthMode.USER_PRINCIPAL


def parse_config(s: str) -> OCIConfig:
    """Parse a connection string into an OCIConfig.

    Valid formats::

        oci:bucket-name
        oci:bucket-name/test1
        oci:bucket-name/test1/test2

    The first path segment is the bucket; the remainder is cleaned and used as
    the key prefix. Without a remainder the prefix is ``.`` (bucket root).

    Raises:
        ConfigurationError: If the scheme is missing or the bucket is empty.
    """
    if not s.startswith(SCHEME):
        raise ConfigurationError("oci: invalid format")

    bucket, _, prefix = s[len(SCHEME):].partition("/")
    if not bucket:
        raise ConfigurationError("oci: bucket name is empty")

    prefix = posixpath.normpath(prefix) if prefix else "."
    prefix = prefix.removeprefix("/")
    return OCIConfig(bucket=bucket, prefix=prefix or ".")


def apply_environment(
    cfg: OCIConfig, environ: Mapping[str, str], prefix: str = ""
) -> OCIConfig:
    """Fill empty config fields from environment variables.

    Explicit configuration always wins: a field is only taken from the
    environment when it is empty in *cfg*. Credential fields are only read for
    the user-principal mode. No validation happens here; each auth strategy
    checks its own required fields when credentials are built.

    Args:
        cfg: The partially filled configuration.
        environ: Environment mapping to read from (usually ``os.environ``).
        prefix: Prefix prepended to every variable name (e.g. "TEST_").

    Returns:
        A new OCIConfig with the overlay applied.
    """

    def env(name: str) -> str:
        return environ.get(prefix + name, "")

    update: dict[str, Any] = {}

    auth_mode = cfg.auth_mode
    if auth_mode is None and env(OCI_AUTH_ENV_VAR):
        auth_mode = AuthMode.parse(env(OCI_AUTH_ENV_VAR))
        update["auth_mode"] = auth_mode

    if not cfg.region:
        update["region"] = env(OCI_REGION_ENV_VAR)
    if not cfg.compartment_id:
        update["compartment_id"] = env(OCI_COMPARTMENT_ENV_VAR)

    if (auth_mode or AuthMode.USER_PRINCIPAL) is AuthMode.USER_PRINCIPAL:
        if not cfg.tenancy_id:
            update["tenancy_id"] = env(OCI_TENANCY_ENV_VAR)
        if not cfg.user_id:
            update["user_id"] = env(OCI_USER_ENV_VAR)
        if not cfg.fingerprint:
            update["fingerprint"] = env(OCI_FINGERPRINT_ENV_VAR)
        if not cfg.private_key_file:
            update["private_key_file"] = env(OCI_KEY_FILE_ENV_VAR)
        if cfg.passphrase is None and env(OCI_PASSPHRASE_ENV_VAR):
            update["passphrase"] = SecretStr(env(OCI_PASSPHRASE_ENV_VAR))

    # Never replace an explicit value with an empty one.
    update = {k: v for k, v in update.items() if v}
    return cfg.model_copy(update=update)


# -- Config file --------------------------------------------------------------


class LoggingConfig(BaseModel):
    """Log output configuration."""

    level: str = "INFO"
    format: str = "text"
    sdk_debug: bool = False


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration.

    When ``textfile`` is set, metrics are enabled and written to that path in
    the text exposition format once the command finishes.
    """

    textfile: str = ""


class AppConfig(BaseModel):
    """Top-level configuration for the ociblob command line tool."""

    repository: str = ""
    oci: dict[str, Any] = Field(default_factory=dict)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    def backend_config(self, repository: str = "") -> OCIConfig:
        """Build the OCIConfig for *repository* (or the configured one).

        Fields from the ``oci`` and ``backend`` sections are applied on top of
        the parsed connection string.

        Raises:
            ConfigurationError: If no repository is given or it is malformed.
        """
        repo = repository or self.repository
        if not repo:
            raise ConfigurationError("no repository specified")
        cfg = parse_config(repo)
        fields = dict(self.oci)
        if "auth_mode" in fields and isinstance(fields["auth_mode"], str):
            fields["auth_mode"] = AuthMode.parse(fields["auth_mode"])
        return OCIConfig(**(cfg.model_dump() | fields))


def _parse_oci(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the oci and backend sections into OCIConfig field values.

    Handles the YAML names: oci.tenancy -> tenancy_id, oci.user -> user_id,
    oci.key_file -> private_key_file, oci.compartment -> compartment_id,
    oci.auth -> auth_mode.
    """
    if data is None:
        return {}
    names = {
        "region": "region",
        "tenancy": "tenancy_id",
        "user": "user_id",
        "fingerprint": "fingerprint",
        "key_file": "private_key_file",
        "passphrase": "passphrase",
        "compartment": "compartment_id",
        "auth": "auth_mode",
    }
    return {field: data[key] for key, field in names.items() if data.get(key)}


def _parse_backend(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the backend section from YAML data."""
    if data is None:
        return {}
    result: dict[str, Any] = {}
    if "connections" in data:
        result["connections"] = data["connections"]
    if data.get("layout"):
        result["layout"] = data["layout"]
    return result


def _parse_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the logging section from YAML data."""
    if data is None:
        return {}
    return {
        "level": data.get("level", "INFO"),
        "format": data.get("format", "text"),
        "sdk_debug": bool(data.get("sdk_debug", False)),
    }


def _parse_metrics(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the metrics section from YAML data."""
    if data is None:
        return {}
    return {"textfile": data.get("textfile") or ""}


def load_config(path: Path) -> AppConfig:
    """Load an AppConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        An AppConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return AppConfig(
        repository=raw.get("repository", ""),
        oci=_parse_oci(raw.get("oci")) | _parse_backend(raw.get("backend")),
        logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
        metrics=MetricsConfig(**_parse_metrics(raw.get("metrics"))),
    )
