"""
HashiCorp Vault client for application secret management.

Uses AppRole authentication. Fails fast on missing configuration.
All paths scoped to the 'events/' prefix - no escape to other secrets.
Secrets are read once at startup by load_app_secrets(); environment
variables of the same name take precedence (local development and tests).
"""

import os
import logging
from dataclasses import dataclass

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

# Project scope - all secrets under this path
_SECRET_PREFIX = "events"


class VaultError(Exception):
    """Vault operation failed. Fatal - application cannot function without secrets."""


class VaultClient:
    """Vault client with AppRole auth, env-based config, and fail-fast behavior."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_namespace: str | None = None,
    ):
        """Initialize with environment variables. Fails fast on missing config."""
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        self.vault_role_id = os.getenv("VAULT_ROLE_ID")
        self.vault_secret_id = os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")

        if not self.vault_role_id or not self.vault_secret_id:
            raise ValueError(
                "VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required"
            )

        client_kwargs = {"url": self.vault_addr}
        if self.vault_namespace:
            client_kwargs["namespace"] = self.vault_namespace

        self.client = hvac.Client(**client_kwargs)
        self._authenticate_approle()

        if not self.client.is_authenticated():
            raise VaultError("Vault authentication failed")

        logger.info(f"Vault client initialized: {self.vault_addr}")

    def _authenticate_approle(self) -> None:
        """Authenticate using AppRole credentials."""
        try:
            auth_response = self.client.auth.approle.login(
                role_id=self.vault_role_id,
                secret_id=self.vault_secret_id,
            )
        except (Unauthorized, Forbidden, InvalidPath) as e:
            logger.error(f"AppRole authentication failed: {e}")
            raise VaultError(f"AppRole authentication failed: {e}") from e
        self.client.token = auth_response["auth"]["client_token"]
        logger.info("AppRole authentication successful")

    def get_secret(self, path: str, field: str) -> str:
        """
        Retrieve single field from KV v2 secret.

        Path is automatically scoped: caller passes 'database', we read
        'events/database'.

        Raises:
            VaultError: Path not accessible or doesn't exist.
            KeyError: Field not found in secret.
        """
        full_path = f"{_SECRET_PREFIX}/{path}"

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath as e:
            logger.error(f"Secret path not found: {full_path}")
            raise VaultError(f"Secret path '{full_path}' not found in Vault") from e
        except (Unauthorized, Forbidden) as e:
            logger.error(f"Access denied to secret {full_path}: {e}")
            raise VaultError(f"Access denied to secret '{full_path}': {e}") from e

        secret_data = response["data"]["data"]
        if field not in secret_data:
            available = list(secret_data.keys())
            raise KeyError(
                f"Field '{field}' not found in secret '{full_path}'. "
                f"Available: {', '.join(available)}"
            )
        return secret_data[field]


@dataclass(frozen=True)
class AppSecrets:
    """Everything the process needs from the secret store."""

    database_url: str
    valkey_url: str
    session_secret: str
    email_gateway_url: str
    email_api_key: str
    email_hmac_secret: str


# (env var, vault path, vault field)
_SECRET_SOURCES = {
    "database_url": ("DATABASE_URL", "database", "url"),
    "valkey_url": ("VALKEY_URL", "valkey", "url"),
    "session_secret": ("SESSION_SECRET", "session", "signing_secret"),
    "email_gateway_url": ("EMAIL_GATEWAY_URL", "email", "gateway_url"),
    "email_api_key": ("EMAIL_API_KEY", "email", "api_key"),
    "email_hmac_secret": ("EMAIL_HMAC_SECRET", "email", "hmac_secret"),
}


def load_app_secrets(vault: VaultClient | None = None) -> AppSecrets:
    """
    Resolve every application secret, env first then Vault.

    Vault is only contacted when at least one value is missing from the
    environment. An empty result for any secret is fatal.

    Raises:
        VaultError: If a secret cannot be resolved.
    """
    values = {}
    missing = []
    for name, (env_var, _, _) in _SECRET_SOURCES.items():
        value = os.getenv(env_var)
        if value:
            values[name] = value
        else:
            missing.append(name)

    if missing:
        vault = vault or VaultClient()
        for name in missing:
            _, path, field = _SECRET_SOURCES[name]
            try:
                values[name] = vault.get_secret(path, field)
            except KeyError as e:
                raise VaultError(str(e)) from e

    empty = [name for name, value in values.items() if not value]
    if empty:
        raise VaultError(f"Empty secrets: {', '.join(sorted(empty))}")

    return AppSecrets(**values)
