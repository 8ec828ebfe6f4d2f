"""
Vault Configuration — Validated key-derivation and cipher settings.

Reads optional overrides from environment variables:
    VAULT_KDF_ITERATIONS = <PBKDF2 work factor for new seals>
    VAULT_SALT_SIZE = <salt length in bytes>
    VAULT_CIPHER_BACKEND = aesgcm | chacha20

Security Note:
    The master passphrase is never part of the configuration.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("navigator.vault")

MIN_ITERATIONS = 10_000
MAX_ITERATIONS = 10_000_000
DEFAULT_ITERATIONS = 600_000  # OWASP 2023 figure for PBKDF2-HMAC-SHA256
MIN_SALT_SIZE = 16  # 128 bits
MAX_SALT_SIZE = 64
DEFAULT_SALT_SIZE = 16


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return int(raw)


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    kdf_iterations: int = Field(
        default=DEFAULT_ITERATIONS, ge=MIN_ITERATIONS, le=MAX_ITERATIONS
    )
    min_iterations: int = Field(
        default=MIN_ITERATIONS, ge=MIN_ITERATIONS, le=MAX_ITERATIONS
    )
    salt_size: int = Field(
        default=DEFAULT_SALT_SIZE, ge=MIN_SALT_SIZE, le=MAX_SALT_SIZE
    )
    cipher_backend: str = Field(default="aesgcm")

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in ("aesgcm", "chacha20"):
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @model_validator(mode="after")
    def validate_work_factor(self) -> "VaultConfig":
        """New seals must not fall below what open_record accepts."""
        if self.kdf_iterations < self.min_iterations:
            raise ValueError(
                f"kdf_iterations {self.kdf_iterations} is below "
                f"min_iterations {self.min_iterations}"
            )
        return self

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        config = cls(
            kdf_iterations=_env_int("VAULT_KDF_ITERATIONS", DEFAULT_ITERATIONS),
            salt_size=_env_int("VAULT_SALT_SIZE", DEFAULT_SALT_SIZE),
            cipher_backend=os.environ.get("VAULT_CIPHER_BACKEND", "aesgcm"),
        )
        logger.debug(
            "Vault config: iterations=%d salt_size=%d cipher=%s",
            config.kdf_iterations, config.salt_size, config.cipher_backend,
        )
        return config
