# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    VaultError,
    AppSecrets,
    load_app_secrets,
)
from clients.postgres_client import PostgresClient, DatabaseError
from clients.valkey_client import ValkeyClient
from clients.email_client import EmailGatewayClient, EmailGatewayError
