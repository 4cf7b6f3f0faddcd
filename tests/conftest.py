"""Shared fixtures."""

from pathlib import Path

import pytest

from sops_decrypt_hook.config import SecretFormat


class FakeDecryptor:
    """Treats secret files as already decrypted and records every call."""

    def __init__(self):
        self.calls = []
        self.failures = {}

    def decrypt(self, path, fmt=SecretFormat.DOTENV):
        self.calls.append((str(path), SecretFormat(fmt)))
        if str(path) in self.failures:
            raise self.failures[str(path)]
        return Path(path).read_bytes()


@pytest.fixture
def decryptor():
    return FakeDecryptor()


@pytest.fixture
def secret_file(tmp_path):
    """Write a plaintext secret file and return its path as a string."""

    def write(name, content):
        path = tmp_path / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
        return str(path)

    return write
