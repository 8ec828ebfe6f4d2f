import pytest

from navigator_vault.vault import VaultConfig, VaultRecord, MemoryVaultStore, VaultSession


@pytest.fixture
def config():
    """Vault config at the minimum work factor to keep tests fast."""
    return VaultConfig(kdf_iterations=10_000)


@pytest.fixture
def bank_record():
    return VaultRecord(title="Bank", username="alice", secret="p@ss", url="", notes="")


@pytest.fixture
def store():
    return MemoryVaultStore()


@pytest.fixture
def vault(store, config):
    session = VaultSession("owner-1", store, config=config)
    yield session
    session.close()
