"""Credential lookup with a process-lifetime cache.

Reading the OS keychain can trigger an interactive prompt, so each
(service, account) pair is looked up at most once per process unless it
is explicitly invalidated. Misses are cached too.
"""

import os
import re
import threading
from typing import ClassVar, Protocol, runtime_checkable

import keyring
import structlog
from keyring.errors import KeyringError

from src.features.fetch.redact import mask_secret


logger = structlog.get_logger()

# Namespace for this tool's entries in the OS keychain
SERVICE_PREFIX = "usage-fetch"


@runtime_checkable
class CredentialStore(Protocol):
    """Backend that can look up a secret."""

    def get(self, service: str, account: str) -> str | None:
        """Look up a secret.

        Args:
            service: Service identifier (e.g. a provider id).
            account: Account identifier (e.g. "api_key").

        Returns:
            The secret, or None if absent.
        """
        ...


class KeyringCredentialStore:
    """Credential store backed by the OS keychain via keyring."""

    def __init__(self, prefix: str = SERVICE_PREFIX) -> None:
        """Initialize the store.

        Args:
            prefix: Prefix joined to the service name.
        """
        self._prefix = prefix

    def full_service(self, service: str) -> str:
        """Build the keychain service name."""
        return f"{self._prefix}:{service}"

    def get(self, service: str, account: str) -> str | None:
        """Look up a secret in the keychain.

        Backend errors are logged and reported as absent; a locked or
        missing keychain must not break the pipeline.
        """
        try:
            return keyring.get_password(self.full_service(service), account)
        except KeyringError as e:
            logger.warning(
                "keychain_lookup_failed",
                component="credentials",
                service=service,
                account=account,
                error=str(e),
            )
            return None


class EnvironmentCredentialStore:
    """Credential store reading environment variables.

    The variable name is ``<PREFIX>_<SERVICE>_<ACCOUNT>`` upper-cased with
    non-alphanumerics replaced by underscores.
    """

    def __init__(self, prefix: str = "USAGE_FETCH") -> None:
        """Initialize the store.

        Args:
            prefix: Variable name prefix.
        """
        self._prefix = prefix

    def variable_name(self, service: str, account: str) -> str:
        """Get the environment variable consulted for a credential."""
        raw = f"{self._prefix}_{service}_{account}"
        return re.sub(r"[^A-Za-z0-9]", "_", raw).upper()

    def get(self, service: str, account: str) -> str | None:
        """Look up a secret in the environment."""
        value = os.environ.get(self.variable_name(service, account))
        return value or None


class ChainedCredentialStore:
    """Tries several stores in order and returns the first hit."""

    def __init__(self, stores: list[CredentialStore]) -> None:
        """Initialize the chain.

        Args:
            stores: Stores in lookup order.
        """
        self._stores = list(stores)

    def get(self, service: str, account: str) -> str | None:
        """Look up a secret in each store in turn."""
        for store in self._stores:
            secret = store.get(service, account)
            if secret is not None:
                return secret
        return None


class CredentialCache:
    """Thread-safe, process-lifetime cache in front of a CredentialStore."""

    _instance: ClassVar["CredentialCache | None"] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, store: CredentialStore) -> None:
        """Initialize the cache.

        Args:
            store: Backend consulted on a cache miss.
        """
        self._store = store
        self._entries: dict[tuple[str, str], str | None] = {}
        self._key_locks: dict[tuple[str, str], threading.Lock] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "CredentialCache":
        """Get the process-wide cache backed by environment then keychain."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls(
                    ChainedCredentialStore(
                        [EnvironmentCredentialStore(), KeyringCredentialStore()]
                    )
                )
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the process-wide cache (primarily for testing)."""
        with cls._instance_lock:
            cls._instance = None

    def get_cached(self, service: str, account: str) -> str | None:
        """Get a secret, consulting the backend at most once per key.

        Lookups for the same key are serialized; lookups for different keys
        proceed in parallel, so a slow keychain prompt for one provider does
        not hold up another.

        Args:
            service: Service identifier.
            account: Account identifier.

        Returns:
            The secret, or None if absent.
        """
        key = (service, account)
        with self._lock:
            if key in self._entries:
                return self._entries[key]
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                if key in self._entries:
                    return self._entries[key]
            secret = self._store.get(service, account)
            with self._lock:
                self._entries[key] = secret

        logger.debug(
            "credential_loaded",
            component="credentials",
            service=service,
            account=account,
            found=secret is not None,
            secret=mask_secret(secret),
        )
        return secret

    def invalidate(self, service: str, account: str) -> None:
        """Forget a cached entry so the next lookup hits the backend."""
        with self._lock:
            self._entries.pop((service, account), None)
        logger.debug(
            "credential_invalidated",
            component="credentials",
            service=service,
            account=account,
        )

    def clear(self) -> None:
        """Forget every cached entry."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def get_credential_cache() -> CredentialCache:
    """Get the process-wide credential cache."""
    return CredentialCache.get_instance()
