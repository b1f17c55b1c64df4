"""
Secret resolution at the service boundary.
Connection parameters are resolved once at startup and handed to the
service as an immutable ConnectionConfig.
"""
import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Mapping
from azure.core.exceptions import ResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.keyvault.secrets import SecretClient
from .settings import Settings

logger = logging.getLogger(__name__)

class SecretNotFound(Exception):
    """Raised when no resolver can provide the requested secret"""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Secret '{name}' not found")

class SecretResolver:
    """Base resolver: maps a secret name to its value"""

    source = "unknown"

    def get_secret(self, name: str) -> str:
        raise NotImplementedError

class EnvironmentSecretResolver(SecretResolver):
    """Reads `sql-connection-string` from SQL_CONNECTION_STRING"""

    source = "environment"

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ

    @staticmethod
    def env_name(name: str) -> str:
        return name.replace("-", "_").replace(".", "_").upper()

    def get_secret(self, name: str) -> str:
        value = self.environ.get(self.env_name(name))
        if not value:
            raise SecretNotFound(name)
        return value

class KeyVaultSecretResolver(SecretResolver):
    """Reads secrets from an Azure Key Vault.

    Authentication goes through DefaultAzureCredential (managed identity,
    workload identity, environment, CLI). A secret missing from the vault is
    SecretNotFound; any other vault failure propagates and stops startup.
    """

    source = "key vault"

    def __init__(self, vault_name: str, client: Optional[SecretClient] = None):
        self.vault_url = f"https://{vault_name}.vault.azure.net"
        self.client = client or SecretClient(vault_url=self.vault_url, credential=DefaultAzureCredential())

    def get_secret(self, name: str) -> str:
        try:
            secret = self.client.get_secret(name)
        except ResourceNotFoundError:
            raise SecretNotFound(name)
        if not secret.value:
            raise SecretNotFound(name)
        return secret.value

class DirectorySecretResolver(SecretResolver):
    """Reads mounted secrets, one file per secret name"""

    source = "directory"

    def __init__(self, path: str):
        self.path = Path(path)

    def get_secret(self, name: str) -> str:
        secret_file = self.path / name
        try:
            value = secret_file.read_text(encoding="utf-8").strip()
        except (FileNotFoundError, IsADirectoryError):
            raise SecretNotFound(name)
        if not value:
            raise SecretNotFound(name)
        return value

class ChainedSecretResolver(SecretResolver):
    """First resolver that knows the secret wins"""

    source = "chain"

    def __init__(self, *resolvers: SecretResolver):
        self.resolvers = resolvers

    def get_secret(self, name: str) -> str:
        for resolver in self.resolvers:
            try:
                value = resolver.get_secret(name)
            except SecretNotFound:
                continue
            logger.info(f"🔑 Secret '{name}' resolved from {resolver.source}")
            return value
        raise SecretNotFound(name)

@dataclass(frozen=True)
class ConnectionConfig:
    """Already-resolved connection parameters for the ledger store and the cache"""
    database_url: str
    redis_url: Optional[str]
    from_secrets: bool = False

def default_resolver(settings: Settings) -> SecretResolver:
    resolvers = []
    if settings.key_vault_name:
        logger.info(f"🔑 Key Vault: https://{settings.key_vault_name}.vault.azure.net")
        resolvers.append(KeyVaultSecretResolver(settings.key_vault_name))
    if settings.secrets_dir:
        resolvers.append(DirectorySecretResolver(settings.secrets_dir))
    resolvers.append(EnvironmentSecretResolver())
    return ChainedSecretResolver(*resolvers)

def _resolve(resolver: SecretResolver, name: str, fallback: Optional[str], required: bool):
    try:
        return resolver.get_secret(name), True
    except SecretNotFound:
        if required:
            logger.error(f"❌ Required secret '{name}' is missing")
            raise
        logger.warning(f"⚠️ Secret '{name}' not found, using configured default")
        return fallback, False

def resolve_connection_config(settings: Settings, resolver: Optional[SecretResolver] = None) -> ConnectionConfig:
    """Resolve database and cache connection URLs once, at process startup"""
    resolver = resolver or default_resolver(settings)
    logger.info("🔐 Loading connection secrets...")

    database_url, db_from_secret = _resolve(
        resolver, settings.sql_secret_name, settings.database_url, settings.require_secrets
    )
    redis_url, cache_from_secret = _resolve(
        resolver, settings.redis_secret_name, settings.redis_url, settings.require_secrets
    )

    return ConnectionConfig(
        database_url=database_url,
        redis_url=redis_url or None,
        from_secrets=db_from_secret and cache_from_secret,
    )
