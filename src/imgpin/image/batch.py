"""Batch resolution and in-place rewriting of image references.

The driver side of resolution: find every reference in a document with the
resolver's regex, resolve the distinct matches in parallel, and substitute
the pinned form for each resolved match. Skipped and failed matches leave
the text untouched; a failure never aborts the batch.

Outcomes are reported as a tri-state ResolveStatus rather than exceptions:
    - RESOLVED: rewrite available (``entity`` set)
    - SKIPPED: nothing to rewrite (``reason`` set)
    - FAILED: resolution raised (``error`` set)

Example:
    >>> from imgpin.image.batch import pin_text
    >>> from imgpin.image.resolver import ImageResolver
    >>> result = pin_text("FROM alpine:3.20\\n", ImageResolver())
    >>> result.text
    'FROM docker.io/library/alpine@sha256:...\\n'
    >>> result.failed
    []
"""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from imgpin.oci.errors import ReferenceSkippedError
from imgpin.schemas.config import DEFAULT_MAX_WORKERS, MAX_WORKERS_LIMIT, ResolverConfig

if TYPE_CHECKING:
    from collections.abc import Iterable

    from imgpin.image.resolver import ImageResolver
    from imgpin.oci.context import ResolveContext
    from imgpin.schemas.image import EntityRef

logger = structlog.get_logger(__name__)

_STAGE_PATTERN = re.compile(r"^\s*FROM\s+(?:--\S+\s+)*\S+\s+AS\s+(\S+)", re.IGNORECASE | re.MULTILINE)


class ResolveStatus(str, Enum):
    """Outcome of resolving one match."""

    RESOLVED = "resolved"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ResolveResult:
    """Outcome of resolving one matched fragment.

    Attributes:
        matched_text: The fragment as found in the document.
        status: Tri-state outcome.
        entity: Rewrite for RESOLVED matches.
        reason: Why a SKIPPED match was left alone.
        error: Exception raised for a FAILED match.
    """

    matched_text: str
    status: ResolveStatus
    entity: EntityRef | None = None
    reason: str = ""
    error: Exception | None = None

    @property
    def replacement(self) -> str:
        """Return the text that should stand in for matched_text."""
        if self.status is ResolveStatus.RESOLVED and self.entity is not None:
            return self.entity.render()
        return self.matched_text


@dataclass(frozen=True)
class PinResult:
    """Result of pinning every reference in a document.

    Attributes:
        original: The input text.
        text: The rewritten text.
        results: One ResolveResult per match, in document order.
    """

    original: str
    text: str
    results: list[ResolveResult] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """Return True if any match was rewritten."""
        return self.text != self.original

    @property
    def resolved(self) -> list[ResolveResult]:
        """Return matches that were pinned."""
        return [r for r in self.results if r.status is ResolveStatus.RESOLVED]

    @property
    def skipped(self) -> list[ResolveResult]:
        """Return matches that needed no rewrite."""
        return [r for r in self.results if r.status is ResolveStatus.SKIPPED]

    @property
    def failed(self) -> list[ResolveResult]:
        """Return matches whose resolution failed."""
        return [r for r in self.results if r.status is ResolveStatus.FAILED]


class BatchResolver:
    """Parallel resolution of many matches with one ImageResolver.

    Distinct matches are resolved once each on a ThreadPoolExecutor; results
    are returned in input order, with duplicates sharing one result.

    Example:
        >>> batch = BatchResolver(ImageResolver(), max_workers=4)
        >>> results = batch.resolve_many(["FROM nginx:1.25", "image: redis:7"])
        >>> [r.status for r in results]
        [<ResolveStatus.RESOLVED: 'resolved'>, <ResolveStatus.RESOLVED: 'resolved'>]
    """

    def __init__(self, resolver: ImageResolver, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        """Initialize BatchResolver.

        Args:
            resolver: Resolver shared by all workers.
            max_workers: Worker threads, capped at MAX_WORKERS_LIMIT.
        """
        self._resolver = resolver
        self._max_workers = max(1, min(max_workers, MAX_WORKERS_LIMIT))

    @property
    def max_workers(self) -> int:
        """Return the number of worker threads."""
        return self._max_workers

    def resolve_one(
        self,
        matched_text: str,
        config: ResolverConfig | None = None,
        context: ResolveContext | None = None,
    ) -> ResolveResult:
        """Resolve one match, converting exceptions to a ResolveResult."""
        try:
            entity = self._resolver.resolve(matched_text, config, context)
        except ReferenceSkippedError as e:
            return ResolveResult(matched_text, ResolveStatus.SKIPPED, reason=e.reason)
        except Exception as e:
            return ResolveResult(matched_text, ResolveStatus.FAILED, error=e)
        return ResolveResult(matched_text, ResolveStatus.RESOLVED, entity=entity)

    def resolve_many(
        self,
        matches: Iterable[str],
        config: ResolverConfig | None = None,
        context: ResolveContext | None = None,
    ) -> list[ResolveResult]:
        """Resolve matches in parallel.

        Args:
            matches: Matched fragments, possibly repeated.
            config: Options shared by every resolution.
            context: Cancellation shared by every resolution.

        Returns:
            One ResolveResult per input match, in input order.
        """
        ordered = list(matches)
        distinct = list(dict.fromkeys(ordered))
        if not distinct:
            return []

        log = logger.bind(total_matches=len(ordered), distinct_matches=len(distinct), max_workers=self._max_workers)
        log.debug("batch_resolve_started")

        outcomes: dict[str, ResolveResult] = {}
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            future_to_match = {
                executor.submit(self.resolve_one, matched_text, config, context): matched_text
                for matched_text in distinct
            }
            for future in as_completed(future_to_match):
                matched_text = future_to_match[future]
                result = future.result()
                outcomes[matched_text] = result
                if result.status is ResolveStatus.FAILED:
                    log.warning("batch_resolve_match_failed", matched_text=matched_text, error=str(result.error))

        log.debug(
            "batch_resolve_completed",
            resolved=sum(1 for r in outcomes.values() if r.status is ResolveStatus.RESOLVED),
            skipped=sum(1 for r in outcomes.values() if r.status is ResolveStatus.SKIPPED),
            failed=sum(1 for r in outcomes.values() if r.status is ResolveStatus.FAILED),
        )
        return [outcomes[matched_text] for matched_text in ordered]


def stage_names(text: str) -> tuple[str, ...]:
    """Return the build stage names declared with ``FROM ... AS name``.

    Stages are local to the Dockerfile, so ``FROM builder`` must not be
    looked up in a registry.
    """
    return tuple(dict.fromkeys(_STAGE_PATTERN.findall(text)))


def pin_text(
    text: str,
    resolver: ImageResolver,
    *,
    config: ResolverConfig | None = None,
    context: ResolveContext | None = None,
    max_workers: int | None = None,
) -> PinResult:
    """Pin every image reference in a document.

    Args:
        text: Dockerfile, Compose or Kubernetes YAML content.
        resolver: Resolver whose regex finds the references.
        config: Resolver options. Defaults to ResolverConfig().
        context: Cancellation shared by every resolution.
        max_workers: Worker threads. Defaults to config.max_workers.

    Returns:
        PinResult with the rewritten text and per-match outcomes.
    """
    config = config or ResolverConfig()
    stages = stage_names(text)
    if stages:
        config = config.with_overrides(exclude=tuple(dict.fromkeys(config.exclude + stages)))

    pattern = re.compile(resolver.regex)
    matches = [m.group(0) for m in pattern.finditer(text)]

    batch = BatchResolver(resolver, max_workers or config.max_workers)
    results = batch.resolve_many(matches, config, context)
    replacements = {r.matched_text: r.replacement for r in results}

    pinned = pattern.sub(lambda m: replacements.get(m.group(0), m.group(0)), text)
    return PinResult(original=text, text=pinned, results=results)


def pin_file(
    path: Path,
    resolver: ImageResolver,
    *,
    config: ResolverConfig | None = None,
    context: ResolveContext | None = None,
    max_workers: int | None = None,
    dry_run: bool = False,
) -> PinResult:
    """Pin every image reference in a file, rewriting it in place.

    Args:
        path: File to rewrite.
        resolver: Resolver whose regex finds the references.
        config: Resolver options.
        context: Cancellation shared by every resolution.
        max_workers: Worker threads. Defaults to config.max_workers.
        dry_run: Resolve and report without writing.

    Returns:
        PinResult for the file content.
    """
    log = logger.bind(path=str(path), dry_run=dry_run)
    original = path.read_text()
    result = pin_text(original, resolver, config=config, context=context, max_workers=max_workers)

    if result.changed and not dry_run:
        path.write_text(result.text)
        log.info("file_pinned", resolved=len(result.resolved), failed=len(result.failed))
    else:
        log.debug("file_unchanged", resolved=len(result.resolved), failed=len(result.failed))
    return result


__all__ = [
    "BatchResolver",
    "PinResult",
    "ResolveResult",
    "ResolveStatus",
    "pin_file",
    "pin_text",
    "stage_names",
]
