"""Broker configuration settings.

BrokerSettings is the single configuration object accepted by create_app().
It is a plain dataclass (not env-coupled) so tests can inject config without
touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from blacksmith.observability.logging import LoggingConfig

_FALSY = frozenset({"", "0", "false", "no", "off"})


def _flag(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() not in _FALSY


@dataclass(frozen=True, slots=True)
class BrokerSettings:
    """Configuration for the broker FastAPI application.

    All fields have defaults suitable for local development, where
    in-memory collaborators stand in for BOSH, Vault and SHIELD.
    Non-local environments must supply real BOSH and Vault endpoints and a
    broker password.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    debug: bool = False
    """Verbose diagnostics (rendered manifests include secrets)."""

    log_level: str = "INFO"
    log_format: str = "json"

    # ── Broker API auth ────────────────────────────────────────────
    broker_username: str = "blacksmith"
    broker_password: str = ""
    """HTTP Basic password. Empty disables auth (local only). Never log this."""

    # ── Catalog ────────────────────────────────────────────────────
    catalog_dirs: tuple[str, ...] = ()
    """Service directories, each holding a service.yml."""

    # ── BOSH ───────────────────────────────────────────────────────
    bosh_address: str = ""
    bosh_username: str = ""
    bosh_password: str = ""
    bosh_skip_verify: bool = False

    # ── Vault ──────────────────────────────────────────────────────
    vault_address: str = ""
    vault_token: str = ""
    vault_prefix: str = "secret"

    # ── SHIELD ─────────────────────────────────────────────────────
    shield_address: str = ""
    """Backup scheduling is disabled when empty."""

    shield_token: str = ""
    shield_tenant: str = ""
    shield_store: str = ""
    shield_schedule: str = "daily 3am"
    shield_retain: str = "7d"
    shield_skip_verify: bool = False

    # ── Lifecycle ──────────────────────────────────────────────────
    credential_seed: str = ""
    """HMAC seed for generated instance secrets."""

    serialize_instances: bool = True
    """Serialize lifecycle calls per instance ID in-process."""

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    @property
    def backups_enabled(self) -> bool:
        return bool(self.shield_address)

    @property
    def auth_enabled(self) -> bool:
        return bool(self.broker_password)

    def logging_config(self) -> LoggingConfig:
        return LoggingConfig(
            level="DEBUG" if self.debug else self.log_level,
            json_output=self.log_format == "json",
            debug=self.debug,
        )

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if self.backups_enabled:
            if not self.shield_token:
                errors.append("shield_token is required when shield_address is set")
            if not self.shield_tenant:
                errors.append("shield_tenant is required when shield_address is set")
            if not self.shield_store:
                errors.append("shield_store is required when shield_address is set")
        if not self.is_local:
            if not self.bosh_address:
                errors.append(f"{self.environment}: bosh_address is required")
            if not self.vault_address:
                errors.append(f"{self.environment}: vault_address is required")
            if not self.vault_token:
                errors.append(f"{self.environment}: vault_token is required")
            if not self.broker_password:
                errors.append(f"{self.environment}: broker_password is required")
            if not self.credential_seed:
                errors.append(f"{self.environment}: credential_seed is required")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> BrokerSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct BrokerSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        services_raw = env.get("BLACKSMITH_SERVICES", "")
        catalog_dirs = tuple(d.strip() for d in services_raw.split(":") if d.strip())

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            debug=bool(env.get("BLACKSMITH_DEBUG", "")),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "json"),
            broker_username=env.get("BROKER_USERNAME", "blacksmith"),
            broker_password=env.get("BROKER_PASSWORD", ""),
            catalog_dirs=catalog_dirs,
            bosh_address=env.get("BOSH_ADDRESS", ""),
            bosh_username=env.get("BOSH_USERNAME", ""),
            bosh_password=env.get("BOSH_PASSWORD", ""),
            bosh_skip_verify=_flag(env.get("BOSH_SKIP_VERIFY"), False),
            vault_address=env.get("VAULT_ADDR", ""),
            vault_token=env.get("VAULT_TOKEN", ""),
            vault_prefix=env.get("VAULT_PREFIX", "secret"),
            shield_address=env.get("SHIELD_ADDRESS", ""),
            shield_token=env.get("SHIELD_TOKEN", ""),
            shield_tenant=env.get("SHIELD_TENANT", ""),
            shield_store=env.get("SHIELD_STORE", ""),
            shield_schedule=env.get("SHIELD_SCHEDULE", "daily 3am"),
            shield_retain=env.get("SHIELD_RETAIN", "7d"),
            shield_skip_verify=_flag(env.get("SHIELD_SKIP_VERIFY"), False),
            credential_seed=env.get("BLACKSMITH_CREDENTIAL_SEED", ""),
            serialize_instances=_flag(env.get("BLACKSMITH_SERIALIZE_INSTANCES"), True),
        )
