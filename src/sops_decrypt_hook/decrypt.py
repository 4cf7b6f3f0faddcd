"""Decryption through the sops CLI."""

import shutil
import signal
import subprocess
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Protocol

from .config import SecretFormat
from .errors import DecryptionFailed, MissingDependency

_CLEANUP_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)


class Decryptor(Protocol):
    """Anything that can turn an encrypted file into plaintext bytes."""

    def decrypt(self, path: str, fmt: SecretFormat = SecretFormat.DOTENV) -> bytes:
        ...


def check_sops_installed(binary: str = "sops") -> bool:
    """Check if sops is installed."""
    try:
        subprocess.run([binary, "--version"], capture_output=True, check=True)
        return True
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False


def check_age_installed() -> bool:
    """Check if age is installed."""
    try:
        subprocess.run(["age", "--version"], capture_output=True, check=True)
        return True
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False


def _exit_on_signal(signum, frame):
    raise SystemExit(128 + signum)


@contextmanager
def exit_on_termination():
    """
    Turn SIGTERM/SIGHUP into SystemExit while the block runs.

    The default action for those signals kills the interpreter without
    running ``finally`` blocks. Signal handlers can only be changed from
    the main thread; elsewhere this is a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = {}
    for sig in _CLEANUP_SIGNALS:
        previous[sig] = signal.getsignal(sig)
        signal.signal(sig, _exit_on_signal)
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)


@contextmanager
def private_tempdir():
    """A 0700 temporary directory that is removed on every exit path."""
    with exit_on_termination():
        tmpdir = Path(tempfile.mkdtemp(prefix="sops-decrypt-hook-"))
        try:
            yield tmpdir
        finally:
            if tmpdir.exists():
                shutil.rmtree(tmpdir)


class SopsDecryptor:
    """
    Decrypt files with ``sops --decrypt``.

    sops writes the plaintext into a private temporary directory, which is
    read back and removed before ``decrypt`` returns.
    """

    def __init__(self, binary: str = "sops", timeout: Optional[float] = None):
        self.binary = binary
        self.timeout = timeout

    def command(self, path: str, fmt: SecretFormat, output: Path) -> list[str]:
        fmt = SecretFormat(fmt)
        return [
            self.binary, "--decrypt",
            "--input-type", fmt.value,
            "--output-type", fmt.value,
            "--output", str(output),
            str(path),
        ]

    def decrypt(self, path: str, fmt: SecretFormat = SecretFormat.DOTENV) -> bytes:
        """Decrypt ``path`` and return the plaintext."""
        with private_tempdir() as tmpdir:
            output = tmpdir / "plaintext"
            try:
                result = subprocess.run(
                    self.command(path, fmt, output),
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                )
            except FileNotFoundError:
                raise MissingDependency(path, f"{self.binary} not found; install sops to decrypt {path}")
            except subprocess.TimeoutExpired:
                raise DecryptionFailed(path, f"Failed to decrypt {path}: sops timed out after {self.timeout}s")

            if result.returncode != 0:
                raise DecryptionFailed(path, f"Failed to decrypt {path}: {result.stderr.strip()}")

            if not output.exists():
                raise DecryptionFailed(path, f"Failed to decrypt {path}: sops produced no output")
            return output.read_bytes()
