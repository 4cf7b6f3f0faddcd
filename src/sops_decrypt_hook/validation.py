"""Key/value policy checks applied before a pair is exported."""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .config import PipelineConfig
from .parsers import IDENTIFIER

NAME_PATTERN = re.compile(IDENTIFIER)

# Shell syntax that would expand or execute if the value were evaluated
INJECTION_PATTERNS = ("$(", "<(", "{{", "$", "`", "\\")


class RejectReason(str, Enum):
    INVALID_NAME = "InvalidName"
    PROTECTED_NAME = "ProtectedName"
    ALREADY_EXISTS = "AlreadyExists"
    FILTERED = "Filtered"
    INVALID_VALUE = "InvalidValue"


@dataclass(frozen=True)
class Accept:
    name: str
    value: str
    sanitized: bool = False


@dataclass(frozen=True)
class Reject:
    reason: RejectReason
    detail: str

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.detail}"


Decision = Union[Accept, Reject]


def is_valid_name(name: str) -> bool:
    """True if ``name`` is a portable shell variable name."""
    return NAME_PATTERN.fullmatch(name) is not None


def find_injection_pattern(value: str) -> Optional[str]:
    """Return the first shell-expansion sequence found in ``value``."""
    for pattern in INJECTION_PATTERNS:
        if pattern in value:
            return pattern
    return None


class KeyValidator:
    """
    Decide whether a key/value pair may become an environment variable.

    Checks run in a fixed order and the first failure wins. Nothing here
    raises: every outcome is an Accept or a Reject.
    """

    def __init__(self, config: PipelineConfig, environ: Mapping):
        self.config = config
        self.environ = environ

    def check_key(self, key: str) -> Optional[Reject]:
        """Identifier check on the raw key, before any prefix is applied."""
        if self.config.validate_keys and not is_valid_name(key):
            return Reject(RejectReason.INVALID_NAME, f"invalid variable name {key!r}")
        return None

    def check_name(self, name: str, value: str) -> Decision:
        """
        Checks on the final, prefixed and transformed name.

        The identifier rule always applies here, whatever ``validate_keys``
        says about the raw key.
        """
        if not is_valid_name(name):
            return Reject(RejectReason.INVALID_NAME, f"invalid variable name {name!r}")

        if name in self.config.protected_vars:
            return Reject(RejectReason.PROTECTED_NAME, f"{name} is protected")

        if not self.config.allow_overwrite and name in self.environ:
            return Reject(RejectReason.ALREADY_EXISTS, f"{name} is already set")

        # No environment can hold a NUL byte
        if "\0" in value:
            return Reject(RejectReason.INVALID_VALUE, f"value of {name} contains a NUL byte")

        return Accept(name, value, sanitized=find_injection_pattern(value) is not None)

    def validate(self, key: str, name: str, value: str) -> Decision:
        """Run the raw-key check and the final-name checks together."""
        return self.check_key(key) or self.check_name(name, value)
