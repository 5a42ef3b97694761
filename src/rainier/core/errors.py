# src/rainier/core/errors.py
"""Exception hierarchy for chain load generation."""

from __future__ import annotations

from typing import List, Optional, Sequence


class RainierError(Exception):
    """Base class for all rainier errors."""


class ConfigurationError(RainierError, ValueError):
    """Invalid startup parameters, files or bounds.

    Raised before any statement is executed.
    """


class PrepareError(RainierError):
    """A chain statement could not be prepared by the store."""

    def __init__(self, line_number: int, query: str, cause: Optional[BaseException] = None):
        self.line_number = line_number
        self.query = query
        self.cause = cause
        message = f"Failed to prepare statement at line {line_number}: {query}"
        if cause is not None:
            message += f" ({cause})"
        super().__init__(message)


class BindingError(RainierError):
    """A statement could not be bound with the resolved arguments."""


class MissingBindingError(BindingError):
    """One or more statement placeholders have no resolved value."""

    def __init__(self,
                 query: str,
                 missing: Sequence[str],
                 line_number: Optional[int] = None,
                 iteration: Optional[int] = None):
        self.query = query
        self.missing: List[str] = list(missing)
        self.line_number = line_number
        self.iteration = iteration
        location = f" (line {line_number})" if line_number is not None else ""
        super().__init__(
            f"Could not find value for key(s) {', '.join(self.missing)} "
            f"in statement{location}: {query}"
        )


class StoreExecutionError(RainierError):
    """The store failed to execute a bound statement."""

    def __init__(self, query: str, cause: BaseException, attempts: int = 1):
        self.query = query
        self.cause = cause
        self.attempts = attempts
        super().__init__(f"Execution failed after {attempts} attempt(s): {query} ({cause})")


class RunCancelled(RainierError):
    """The run was stopped while work was still pending."""
