"""
Tests for the secret store and field encryption.
"""

import os
import stat
import sys

import pytest

from repocloak.anonymizer import Replacement
from repocloak.crypto import (
    KeyStore,
    decrypt,
    decrypt_replacements,
    encrypt,
    encrypt_replacements,
)
from repocloak.errors import DecryptionError


class TestEncryptDecrypt:
    def test_round_trip(self, secret):
        assert decrypt(encrypt("Hello World", secret), secret) == "Hello World"

    def test_fresh_nonce_every_call(self, secret):
        first = encrypt("Same input", secret)
        second = encrypt("Same input", secret)

        assert first != second
        assert decrypt(first, secret) == "Same input"
        assert decrypt(second, secret) == "Same input"

    def test_format_is_three_hex_parts(self, secret):
        nonce, tag, ciphertext = encrypt("abc", secret).split(":")

        assert len(nonce) == 32
        assert len(tag) == 32
        assert len(ciphertext) == 6
        bytes.fromhex(nonce + tag + ciphertext)

    def test_wrong_secret_returns_none(self, secret):
        assert decrypt(encrypt("Secret message", secret), "wrong-secret") is None

    def test_special_characters(self, secret):
        original = "Special: @#$%^&*()_+ 日本語 🎭"
        assert decrypt(encrypt(original, secret), secret) == original

    def test_empty_string(self, secret):
        assert decrypt(encrypt("", secret), secret) == ""

    def test_long_string(self, secret):
        original = "A" * 10000
        assert decrypt(encrypt(original, secret), secret) == original

    def test_tampered_ciphertext(self, secret):
        nonce, tag, ciphertext = encrypt("payload", secret).split(":")
        flipped = ciphertext[:-1] + ("0" if ciphertext[-1] != "0" else "1")

        assert decrypt(f"{nonce}:{tag}:{flipped}", secret) is None

    @pytest.mark.parametrize("data", [
        "",
        "not-encrypted",
        "a:b",
        "a:b:c:d",
        "zz:yy:xx",
        "::abcd",
        None,
        42,
    ])
    def test_malformed_input_returns_none(self, secret, data):
        assert decrypt(data, secret) is None


class TestReplacements:
    def test_encrypts_only_original(self, secret):
        encrypted = encrypt_replacements(
            [Replacement("Cuviva", "ABCCompany"), Replacement("Secret", "Public")],
            secret,
        )

        assert encrypted[0].replacement == "ABCCompany"
        assert encrypted[1].replacement == "Public"
        assert encrypted[0].original != "Cuviva"
        assert encrypted[0].original.count(":") == 2
        assert all(r.encrypted for r in encrypted)

    def test_decrypts_back(self, secret):
        encrypted = encrypt_replacements([Replacement("Cuviva", "ABCCompany")], secret)
        decrypted = decrypt_replacements(encrypted, secret)

        assert decrypted == [Replacement("Cuviva", "ABCCompany")]

    def test_marks_failed_entries(self, secret):
        encrypted = encrypt_replacements([Replacement("Test", "Demo")], secret)
        decrypted = decrypt_replacements(encrypted, "wrong-secret")

        assert decrypted[0].decrypt_failed is True
        assert decrypted[0].original is None
        assert decrypted[0].replacement == "Demo"

    def test_partial_failure_keeps_the_rest(self, secret):
        good = encrypt_replacements([Replacement("Good", "One")], secret)[0]
        bad = Replacement("deadbeef:cafe:00", "Two", encrypted=True)
        plain = Replacement("Plain", "Three")

        decrypted = decrypt_replacements([good, bad, plain], secret)

        assert decrypted[0] == Replacement("Good", "One")
        assert decrypted[1].decrypt_failed
        assert decrypted[2] is plain


class TestKeyStore:
    def test_creates_secret_on_first_use(self, tmp_path):
        store = KeyStore(tmp_path / "home" / "secret.key")
        assert not store.has_secret()

        secret = store.get_or_create_secret()

        assert store.has_secret()
        assert len(secret) == 64
        bytes.fromhex(secret)

    def test_secret_is_stable_across_instances(self, tmp_path):
        path = tmp_path / "secret.key"
        first = KeyStore(path).get_or_create_secret()
        second = KeyStore(path).get_or_create_secret()

        assert first == second

    def test_get_secret_never_creates(self, tmp_path):
        path = tmp_path / "home" / "secret.key"
        store = KeyStore(path)

        with pytest.raises(DecryptionError):
            store.get_secret()

        assert not path.exists()
        assert not store.has_secret()

    def test_get_secret_reads_existing(self, tmp_path):
        path = tmp_path / "secret.key"
        created = KeyStore(path).get_or_create_secret()
        assert KeyStore(path).get_secret() == created

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_secret_file_is_owner_only(self, tmp_path):
        path = tmp_path / "secret.key"
        KeyStore(path).get_or_create_secret()

        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_default_path_follows_environment(self, isolated_home):
        store = KeyStore()
        assert store.path == isolated_home / "secret.key"

    def test_in_memory_store(self, tmp_path, isolated_home):
        store = KeyStore.in_memory("abc")

        assert store.has_secret()
        assert store.get_or_create_secret() == "abc"
        assert store.path is None
        assert not isolated_home.exists()
