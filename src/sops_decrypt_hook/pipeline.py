"""
Run the decrypt → parse → validate → export pipeline over configured files.

Files are processed one at a time, in configured order. A failure in one
file never undoes what earlier files (or earlier lines of the same file)
already exported. With ``fail_on_error`` the first per-file failure stops
the run; otherwise the file is abandoned and the next one is processed.
"""

import logging
import os
import re
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .config import FileSpec, PipelineConfig
from .decrypt import Decryptor, SopsDecryptor
from .errors import (
    DecryptionFailed,
    FileError,
    FileTooLarge,
    PathTraversal,
    RequiredFileMissing,
)
from .exporter import BindingExporter, ExportResult
from .parsers import decode_plaintext, parse, resolve_format, split_lines

logger = logging.getLogger(__name__)


class FileState(str, Enum):
    PENDING = "pending"
    PATH_CHECKED = "path_checked"
    EXISTENCE_CHECKED = "existence_checked"
    SIZE_CHECKED = "size_checked"
    DECRYPTED = "decrypted"
    PARSED = "parsed"
    EXPORTED = "exported"
    DONE = "done"
    SKIPPED = "skipped"
    ABORTED = "aborted"


@dataclass
class FileStats:
    """Counters and final state for one file."""

    path: str
    state: FileState = FileState.PENDING
    lines_read: int = 0
    exported: int = 0
    skipped: int = 0
    sanitized: int = 0
    error: Optional[FileError] = None


@dataclass
class RunStats:
    files: list = field(default_factory=list)
    aborted: bool = False

    @property
    def lines_read(self) -> int:
        return sum(f.lines_read for f in self.files)

    @property
    def exported(self) -> int:
        return sum(f.exported for f in self.files)

    @property
    def skipped(self) -> int:
        return sum(f.skipped for f in self.files)

    @property
    def sanitized(self) -> int:
        return sum(f.sanitized for f in self.files)

    @property
    def failures(self) -> list:
        return [f for f in self.files if f.error is not None]


def has_path_traversal(path: str) -> bool:
    """True if any segment of ``path`` is ``..``."""
    return ".." in re.split(r"[\\/]", str(path))


class Pipeline:
    """
    One run over the configured secret files.

    ``environ`` is the environment the bindings are installed into and the
    one checked for existing names; it defaults to ``os.environ``. After
    ``run()`` the exported bindings are available as ``bindings`` (name to
    value, last write wins) and ``exported`` (Binding objects, in order).
    """

    def __init__(self, config: PipelineConfig, decryptor: Decryptor = None, environ: MutableMapping = None):
        self.config = config
        self.decryptor = decryptor or SopsDecryptor(config.sops_binary, config.decrypt_timeout)
        self.environ = os.environ if environ is None else environ
        self.exporter = BindingExporter(config, self.environ)
        self.bindings = {}
        self.exported = []
        self.stats = RunStats()

    def run(self):
        """Process every file; return ``(bindings, stats)``."""
        specs = self.config.file_specs
        self.stats = RunStats(files=[FileStats(spec.path) for spec in specs])

        for spec, file_stats in zip(specs, self.stats.files):
            try:
                self.process_file(spec, file_stats)
            except FileError as e:
                file_stats.state = FileState.ABORTED
                file_stats.error = e
                if self.config.fail_on_error:
                    self.stats.aborted = True
                    logger.error("%s: %s", e.kind, e)
                    raise
                logger.warning("%s: %s (skipping file)", e.kind, e)

        logger.debug(
            "Done: %d files, %d lines read, %d exported, %d skipped",
            len(self.stats.files), self.stats.lines_read, self.stats.exported, self.stats.skipped,
        )
        return self.bindings, self.stats

    def _advance(self, stats: FileStats, state: FileState) -> None:
        stats.state = state
        logger.debug("%s: %s", stats.path, state.value)

    def process_file(self, spec: FileSpec, stats: FileStats) -> None:
        path = Path(spec.path)

        if self.config.validate_paths and has_path_traversal(spec.path):
            raise PathTraversal(spec.path, f"Potential path traversal detected: {spec.path}")
        self._advance(stats, FileState.PATH_CHECKED)

        if not path.is_file():
            if spec.required:
                raise RequiredFileMissing(spec.path, f"SOPS file not found: {spec.path}")
            stats.state = FileState.SKIPPED
            logger.debug("%s: optional file not found", spec.path)
            return
        self._advance(stats, FileState.EXISTENCE_CHECKED)

        size = path.stat().st_size
        if self.config.max_file_size > 0 and size > self.config.max_file_size:
            raise FileTooLarge(
                spec.path,
                f"SOPS file too large: {spec.path} ({size} bytes, limit {self.config.max_file_size})",
            )
        self._advance(stats, FileState.SIZE_CHECKED)

        fmt = resolve_format(spec.format, spec.path)
        try:
            plaintext = self.decryptor.decrypt(spec.path, fmt)
        except OSError as e:
            raise DecryptionFailed(spec.path, f"Failed to decrypt {spec.path}: {e}") from e
        self._advance(stats, FileState.DECRYPTED)

        text = decode_plaintext(plaintext, spec.path)
        stats.lines_read = len(split_lines(text))
        pairs = list(parse(text, fmt, spec.path))
        self._advance(stats, FileState.PARSED)

        result = ExportResult()
        try:
            self.exporter.export(pairs, spec, result)
        finally:
            self._record(result, stats)
        self._advance(stats, FileState.EXPORTED)

        stats.state = FileState.DONE
        logger.debug(
            "%s: %d lines read, %d exported, %d skipped",
            spec.path, stats.lines_read, stats.exported, stats.skipped,
        )

    def _record(self, result: ExportResult, stats: FileStats) -> None:
        stats.exported = result.exported
        stats.skipped = result.skipped
        stats.sanitized = result.sanitized
        for binding in result.bindings:
            self.bindings[binding.name] = binding.value
            self.exported.append(binding)


def run(config: PipelineConfig, decryptor: Decryptor = None, environ: MutableMapping = None):
    """Run the pipeline once; return ``(bindings, stats)``."""
    return Pipeline(config, decryptor, environ).run()
