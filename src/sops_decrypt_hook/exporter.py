"""Turn accepted pairs into environment variables."""

import logging
import re
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from typing import Iterable

from .config import FileSpec, PipelineConfig
from .parsers import RawPair
from .render import mask_value
from .validation import Accept, KeyValidator, Reject, RejectReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Binding:
    """A validated variable, ready to be installed."""

    name: str
    value: str
    source_file: str = ""
    sanitized: bool = False


@dataclass
class ExportResult:
    bindings: list = field(default_factory=list)
    exported: int = 0
    skipped: int = 0
    sanitized: int = 0


class BindingExporter:
    """
    Prefix, transform, filter, validate and install pairs of one file.

    Every accepted pair is written to ``environ`` as soon as it passes, so
    later pairs (and later files) see it when the overwrite check runs.
    """

    def __init__(self, config: PipelineConfig, environ: MutableMapping, validator: KeyValidator = None):
        self.config = config
        self.environ = environ
        self.validator = validator or KeyValidator(config, environ)

    def final_name(self, key: str, spec: FileSpec) -> str:
        """Apply the global prefix, the file prefix and the key transform."""
        return self.config.key_transform.apply(self.config.global_prefix + spec.prefix + key)

    def decide(self, pair: RawPair, spec: FileSpec, name_filter=None):
        rejected = self.validator.check_key(pair.key)
        if rejected:
            return rejected

        name = self.final_name(pair.key, spec)
        if name_filter is not None and not name_filter.search(name):
            return Reject(RejectReason.FILTERED, f"{name} does not match filter {spec.filter!r}")

        return self.validator.check_name(name, pair.value)

    def export(self, pairs: Iterable[RawPair], spec: FileSpec, result: ExportResult = None) -> ExportResult:
        """
        Export the pairs of one file.

        Pass ``result`` to have the counts updated in place, which keeps
        them accurate if the pair iterator fails part-way through.
        """
        result = result if result is not None else ExportResult()
        name_filter = re.compile(spec.filter) if spec.filter else None

        for pair in pairs:
            decision = self.decide(pair, spec, name_filter)
            if isinstance(decision, Reject):
                result.skipped += 1
                logger.debug("%s (%s): skipped %s", spec.path, pair.source, decision)
                continue

            self._install(decision, spec, pair, result)

        return result

    def _install(self, accepted: Accept, spec: FileSpec, pair: RawPair, result: ExportResult) -> None:
        if accepted.sanitized:
            result.sanitized += 1
            logger.warning(
                "%s (%s): value of %s contains shell syntax, exporting it as a literal: %s",
                spec.path, pair.source, accepted.name, mask_value(accepted.value),
            )

        self.environ[accepted.name] = accepted.value
        result.bindings.append(
            Binding(accepted.name, accepted.value, source_file=spec.path, sanitized=accepted.sanitized)
        )
        result.exported += 1
        logger.debug("%s (%s): exported %s", spec.path, pair.source, accepted.name)
