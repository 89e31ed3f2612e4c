#!/usr/bin/env python3
"""Exceptions and warning categories for the analysis pipeline.

Fatal problems (a source that cannot be fetched or parsed) are exceptions and
abort the run. Row-level data-quality problems are warnings: they are emitted
with :func:`warnings.warn` and also collected as :class:`Diagnostic` records so
the caller gets them back with the results.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Type


class PipelineError(Exception):
    """Base class for fatal pipeline errors."""


class AcquisitionError(PipelineError):
    """A source could not be downloaded, extracted or read.

    Args:
        source: Logical source name ('cases', 'deaths' or 'demographics')
        locator: URL or path that was being read
        reason: What went wrong
    """

    def __init__(self, source: str, locator: str, reason: str):
        self.source = source
        self.locator = locator
        self.reason = reason
        super().__init__(f"Failed to acquire {source} data from {locator}: {reason}")


class ParseError(PipelineError):
    """A table does not have the expected structure or content."""

    def __init__(self, table: str, reason: str):
        self.table = table
        self.reason = reason
        super().__init__(f"Malformed {table} table: {reason}")


class DataQualityWarning(UserWarning):
    """Base class for non-fatal, row-level data-quality problems."""


class JoinIntegrityWarning(DataQualityWarning):
    """Case and death tables do not cover the same (country, date) keys."""


class MissingDemographicsWarning(DataQualityWarning):
    """Countries with case/death data but no demographic snapshot."""


class ComputationWarning(DataQualityWarning):
    """Per-capita rate could not be computed (missing or non-positive population)."""


@dataclass
class Diagnostic:
    """One non-fatal finding reported alongside the pipeline results."""
    category: Type[DataQualityWarning]
    message: str
    countries: List[str] = field(default_factory=list)
    count: Optional[int] = None

    def __post_init__(self):
        if self.count is None:
            self.count = len(self.countries)

    def to_dict(self) -> dict:
        return {
            'category': self.category.__name__,
            'message': self.message,
            'count': self.count,
            'countries': '; '.join(self.countries),
        }
