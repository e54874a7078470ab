# Process configuration, read once from the environment at startup.
#
# Every value is validated eagerly: a missing required variable or a malformed
# optional one raises ConfigError before any connection is opened, so the
# poll loop never starts with a half-valid configuration.
#
# HTTP_USERNAME_PATH and HTTP_PASSWORD_PATH name files, not values. One
# trailing newline is stripped from each file's content.

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass

VERSION: str = "1.0.0"

SLEEP_DURATION_SECONDS: float = 0.1
REQUEST_TIMEOUT_SECONDS: float = 5.0
LOG_INTERVAL_SECONDS: float = 60.0
USER_AGENT: str = f"http-poller/{VERSION}"
HEALTH_CHECK_PORT: int = 8080

COMPRESSION_TYPES: tuple[str, ...] = ("Zlib", "LZ4", "ZSTD", "SNAPPY")
DEFAULT_COMPRESSION_TYPE: str = "ZSTD"


class ConfigError(ValueError):
    """Raised when the environment does not describe a usable configuration."""


@dataclass(frozen=True)
class PollerConfig:
    url: str
    username: str | None = None
    password: str | None = None
    sleep_duration_s: float = SLEEP_DURATION_SECONDS
    request_timeout_s: float = REQUEST_TIMEOUT_SECONDS
    is_url_in_message_properties: bool = False
    log_interval_s: float = LOG_INTERVAL_SECONDS
    user_agent: str = USER_AGENT
    warning_threshold_s: float | None = None


@dataclass(frozen=True)
class PulsarOAuth2Config:
    issuer_url: str
    private_key: str           # path to the key file, handed to the client as is
    audience: str


@dataclass(frozen=True)
class PulsarConfig:
    service_url: str
    topic: str
    oauth2: PulsarOAuth2Config
    tls_validate_hostname: bool = True
    block_if_queue_full: bool = True
    compression_type: str = DEFAULT_COMPRESSION_TYPE


@dataclass(frozen=True)
class HealthCheckConfig:
    port: int = HEALTH_CHECK_PORT


@dataclass(frozen=True)
class Config:
    poller: PollerConfig
    pulsar: PulsarConfig
    health_check: HealthCheckConfig


class _EnvReader:
    """Typed accessors over an environment mapping."""

    def __init__(self, environ: Mapping[str, str]) -> None:
        self._env = environ

    def required(self, name: str) -> str:
        value = self._env.get(name)
        if value is None:
            raise ConfigError(f"{name} must be defined")
        return value

    def optional(self, name: str) -> str | None:
        return self._env.get(name)

    def boolean(self, name: str, default: bool) -> bool:
        value = self.optional(name)
        if value is None:
            return default
        if value not in ("true", "false"):
            raise ConfigError(f'{name} must be either "false" or "true"')
        return value == "true"

    def non_negative_float(self, name: str, default: float | None) -> float | None:
        value = self.optional(name)
        if value is None:
            return default
        try:
            number = float(value)
        except ValueError:
            raise ConfigError(f"{name} must be a number, got {value!r}") from None
        if not math.isfinite(number) or number < 0:
            raise ConfigError(f"{name} must be a non-negative finite number, got {value!r}")
        return number

    def port(self, name: str, default: int) -> int:
        value = self.optional(name)
        if value is None:
            return default
        try:
            number = int(value, 10)
        except ValueError:
            raise ConfigError(f"{name} must be an integer, got {value!r}") from None
        if not 0 < number < 65536:
            raise ConfigError(f"{name} must be between 1 and 65535, got {number}")
        return number


def _read_secret(name: str, path: str) -> str:
    """
    Read a credential from the file named by the variable `name`.

    The file is read as UTF-8. One trailing newline, if present, is dropped,
    so `echo secret > file` and `printf secret > file` give the same value.
    Any other whitespace is kept as part of the credential.
    """
    try:
        with open(path, encoding="utf-8") as f:
            content = f.read()
    except OSError as exc:
        raise ConfigError(f"Could not read the file given in {name}: {exc}") from exc
    return content[:-1] if content.endswith("\n") else content


def _get_http_auth(env: _EnvReader) -> tuple[str | None, str | None]:
    username_key = "HTTP_USERNAME_PATH"
    password_key = "HTTP_PASSWORD_PATH"
    username_path = env.optional(username_key)
    password_path = env.optional(password_key)
    if (username_path is None) != (password_path is None):
        raise ConfigError(
            f"Either both or neither of {username_key} and {password_key} must be defined"
        )
    if username_path is None or password_path is None:
        return None, None
    return (
        _read_secret(username_key, username_path),
        _read_secret(password_key, password_path),
    )


def _get_poller_config(env: _EnvReader) -> PollerConfig:
    username, password = _get_http_auth(env)
    return PollerConfig(
        url=env.required("HTTP_URL"),
        username=username,
        password=password,
        sleep_duration_s=env.non_negative_float(
            "HTTP_SLEEP_DURATION_IN_SECONDS", SLEEP_DURATION_SECONDS
        ),
        request_timeout_s=env.non_negative_float(
            "HTTP_REQUEST_TIMEOUT_IN_SECONDS", REQUEST_TIMEOUT_SECONDS
        ),
        # Named after Pulsar because that is where the value ends up, even
        # though only the poller reads it.
        is_url_in_message_properties=env.boolean(
            "PULSAR_IS_URL_IN_MESSAGE_PROPERTIES", False
        ),
        log_interval_s=env.non_negative_float(
            "LOG_INTERVAL_IN_SECONDS", LOG_INTERVAL_SECONDS
        ),
        user_agent=env.optional("HTTP_USER_AGENT") or USER_AGENT,
        warning_threshold_s=env.non_negative_float(
            "HTTP_WARNING_THRESHOLD_IN_SECONDS", None
        ),
    )


def _get_compression_type(env: _EnvReader) -> str:
    compression_type = env.optional("PULSAR_COMPRESSION_TYPE") or DEFAULT_COMPRESSION_TYPE
    if compression_type not in COMPRESSION_TYPES:
        raise ConfigError(
            "If defined, PULSAR_COMPRESSION_TYPE must be one of 'Zlib', 'LZ4', "
            f"'ZSTD' or 'SNAPPY'. Default is '{DEFAULT_COMPRESSION_TYPE}'."
        )
    return compression_type


def _get_pulsar_config(env: _EnvReader) -> PulsarConfig:
    oauth2 = PulsarOAuth2Config(
        issuer_url=env.required("PULSAR_OAUTH2_ISSUER_URL"),
        private_key=env.required("PULSAR_OAUTH2_KEY_PATH"),
        audience=env.required("PULSAR_OAUTH2_AUDIENCE"),
    )
    return PulsarConfig(
        service_url=env.required("PULSAR_SERVICE_URL"),
        topic=env.required("PULSAR_TOPIC"),
        oauth2=oauth2,
        tls_validate_hostname=env.boolean("PULSAR_TLS_VALIDATE_HOSTNAME", True),
        block_if_queue_full=env.boolean("PULSAR_BLOCK_IF_QUEUE_FULL", True),
        compression_type=_get_compression_type(env),
    )


def get_config(environ: Mapping[str, str] | None = None) -> Config:
    """
    Build the whole configuration from environment variables.

    Raises ConfigError on the first missing or malformed value.
    """
    env = _EnvReader(os.environ if environ is None else environ)
    return Config(
        poller=_get_poller_config(env),
        pulsar=_get_pulsar_config(env),
        health_check=HealthCheckConfig(port=env.port("HEALTH_CHECK_PORT", HEALTH_CHECK_PORT)),
    )
