"""Tests for the secure cache tier encryption helpers."""

import pytest
from cryptography.fernet import InvalidToken

from linkstore.core.encryption import decrypt_value, encrypt_value
from linkstore.core.exceptions import CacheTierUnavailableException

KEY = "device-passphrase"


class TestEncryption:
    """Tests for linkstore.core.encryption (Fernet via SHA-256 key derivation)."""

    def test_encrypt_decrypt_round_trip(self) -> None:
        ciphertext = encrypt_value('{"storeName": "Acme"}', KEY)

        assert decrypt_value(ciphertext, KEY) == '{"storeName": "Acme"}'

    def test_encrypt_produces_different_ciphertext_each_call(self) -> None:
        """Fernet includes a timestamp + IV, so repeated encryptions differ."""
        assert encrypt_value("same", KEY) != encrypt_value("same", KEY)

    def test_wrong_key_cannot_decrypt(self) -> None:
        ciphertext = encrypt_value("secret", KEY)

        with pytest.raises(InvalidToken):
            decrypt_value(ciphertext, "another-passphrase")

    def test_empty_key_is_unavailable(self) -> None:
        with pytest.raises(CacheTierUnavailableException):
            encrypt_value("secret", "")
