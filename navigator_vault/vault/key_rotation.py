"""
Vault Re-sealing — Batch re-encryption of an owner's records.

Used when the master passphrase changes, or when the configured PBKDF2 work
factor is raised and older records should be brought up to it. Every record
is re-sealed under a fresh salt. The operation is idempotent for work-factor
upgrades: records already at or above the configured iteration count are skipped.

Security Note:
    Plaintext exists in memory only while its own record is re-sealed.
    Never log plaintext, passphrases or ciphertext values.
"""
import asyncio
import logging
from typing import Optional

from ..exceptions import DecryptionFailed, NotFound
from .config import VaultConfig
from .crypto import Passphrase, seal, open_record, read_iterations
from .records import EncryptedRecord
from .stores import VaultStore

logger = logging.getLogger("navigator.vault")


def _reseal(
    record: EncryptedRecord,
    old_passphrase: Passphrase,
    new_passphrase: Passphrase,
    config: VaultConfig,
) -> tuple[bytes, bytes]:
    plain = open_record(record.ciphertext, record.salt, old_passphrase, config)
    return seal(plain, new_passphrase, config)


async def reseal_records(
    store: VaultStore,
    owner_id: str,
    old_passphrase: Passphrase,
    new_passphrase: Optional[Passphrase] = None,
    config: Optional[VaultConfig] = None,
) -> dict:
    """Re-seal every record of an owner.

    Args:
        store: Remote store adapter.
        owner_id: Owner whose records are re-sealed.
        old_passphrase: Passphrase the records are currently sealed under.
        new_passphrase: Target passphrase; None keeps the old one and only
            upgrades records below the configured work factor.
        config: Target work factor, salt size and cipher.

    Returns:
        Stats dict with keys: total, resealed, errors, skipped.
    """
    if config is None:
        config = VaultConfig.from_env()
    target = new_passphrase if new_passphrase is not None else old_passphrase
    upgrade_only = new_passphrase is None
    stats = {"total": 0, "resealed": 0, "errors": 0, "skipped": 0}

    records = await store.list_by_owner(owner_id)
    logger.info(
        "Starting re-seal for owner=%s (%d records, iterations=%d)",
        owner_id, len(records), config.kdf_iterations,
    )

    for record in records:
        stats["total"] += 1
        current = read_iterations(record.ciphertext) or 0
        if upgrade_only and current >= config.kdf_iterations:
            stats["skipped"] += 1
            continue
        try:
            ciphertext, salt = await asyncio.to_thread(
                _reseal, record, old_passphrase, target, config
            )
            await store.update(
                owner_id,
                record.id,
                EncryptedRecord(
                    id=record.id,
                    owner_id=owner_id,
                    ciphertext=ciphertext,
                    salt=salt,
                ),
            )
            stats["resealed"] += 1
        except (DecryptionFailed, NotFound) as err:
            logger.error(
                "Error re-sealing vault record id=%s owner=%s: %s",
                record.id, owner_id, err.__class__.__name__,
            )
            stats["errors"] += 1

    logger.info("Re-seal complete: %s", stats)
    return stats
