"""
Unit tests for CredentialVault.
"""
import pytest

from storesync.utils.exceptions import ConfigError
from storesync.utils.logger import logger
from storesync.utils.vault import CredentialVault

KEY = '0123456789abcdef' * 4


class TestCredentialVault:
    """Tests for token encryption at rest."""

    def test_round_trip(self) -> None:
        vault = CredentialVault(KEY, logger)

        encrypted = vault.encrypt('shpat_secret')

        assert encrypted != 'shpat_secret'
        assert CredentialVault.is_probably_encrypted(encrypted)
        assert vault.decrypt(encrypted) == 'shpat_secret'

    def test_fresh_iv_per_encryption(self) -> None:
        vault = CredentialVault(KEY, logger)
        assert vault.encrypt('token') != vault.encrypt('token')

    def test_legacy_plaintext_passes_through(self) -> None:
        vault = CredentialVault(KEY, logger)
        assert vault.decrypt('shpat_plain') == 'shpat_plain'
        assert vault.decrypt(None) is None

    def test_wrong_key_returns_none(self) -> None:
        encrypted = CredentialVault(KEY, logger).encrypt('shpat_secret')
        other = CredentialVault('f' * 64, logger)

        assert other.decrypt(encrypted) != 'shpat_secret'

    def test_truncated_ciphertext_returns_none(self) -> None:
        vault = CredentialVault(KEY, logger)
        encrypted = vault.encrypt('shpat_secret')

        assert vault.decrypt(encrypted[:-2]) is None

    def test_passphrase_secret(self) -> None:
        vault = CredentialVault('not a hex key', logger)
        assert vault.decrypt(vault.encrypt('token')) == 'token'

    def test_missing_secret(self) -> None:
        with pytest.raises(ConfigError):
            CredentialVault('', logger)

    def test_passphrase_is_padded_and_cut_by_characters(self) -> None:
        assert CredentialVault('not a hex key', logger).key == b'not a hex key' + b'0' * 19
        assert CredentialVault('k' * 40, logger).key == b'k' * 32

    def test_multibyte_passphrase_is_rejected(self) -> None:
        """32 characters of a multibyte passphrase encode to more than 32 bytes."""
        with pytest.raises(ConfigError):
            CredentialVault('clé secrète', logger)
