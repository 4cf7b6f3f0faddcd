"""Exceptions raised by the decrypt/parse/export pipeline."""


class HookError(Exception):
    """Base exception for sops-decrypt-hook errors."""
    pass


class ConfigError(HookError):
    """Configuration file or option is invalid."""
    pass


class FileError(HookError):
    """A failure that aborts processing of one secret file."""

    kind = "FileError"

    def __init__(self, path, message: str):
        super().__init__(message)
        self.path = str(path)


class PathTraversal(FileError):
    """Path contains a '..' segment."""
    kind = "PathTraversal"


class RequiredFileMissing(FileError):
    """A required secret file does not exist."""
    kind = "RequiredFileMissing"


class FileTooLarge(FileError):
    """Secret file exceeds the configured size limit."""
    kind = "FileTooLarge"


class DecryptionFailed(FileError):
    """sops could not decrypt the file."""
    kind = "DecryptionFailed"


class UnsupportedFormat(FileError):
    """Unknown format tag."""
    kind = "UnsupportedFormat"


class MissingDependency(FileError):
    """An external tool needed for the file is not installed."""
    kind = "MissingDependency"


class MalformedContent(FileError):
    """Decrypted plaintext could not be read in its declared format."""
    kind = "MalformedContent"
