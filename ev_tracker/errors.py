"""
Pipeline Exception Classes

Error taxonomy for a daily run. Per-page and per-row failures are recovered
where they happen and only counted; training and storage failures abort the run
and carry the stage that failed.
"""

from typing import Optional, Dict, Any


class PipelineError(Exception):
    """
    Base exception class for all pipeline errors.

    Provides common functionality for error reporting and logging.
    """

    stage = "pipeline"

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        if stage is not None:
            self.stage = stage
        self.details = details or {}
        super().__init__(message)


class ExtractionFailure(PipelineError):
    """Raised when a page cannot be fetched or its markup is inconsistent."""

    stage = "extraction"

    def __init__(self, page_index: Optional[int], reason: str):
        message = f"Page {page_index} skipped: {reason}" if page_index is not None else reason
        super().__init__(message, details={"page_index": page_index, "reason": reason})
        self.page_index = page_index
        self.reason = reason


class ParseFailure(PipelineError):
    """Raised when a single field of a listing cannot be parsed."""

    stage = "cleaning"

    def __init__(self, field: str, value: Any):
        super().__init__(
            f"Cannot parse {field} from {value!r}",
            details={"field": field, "value": value}
        )
        self.field = field
        self.value = value


class InvariantViolation(PipelineError):
    """Raised when a cleaned listing falls outside the accepted age/price bounds."""

    stage = "cleaning"

    def __init__(self, rule: str, value: Any):
        super().__init__(
            f"Listing violates {rule} (value={value!r})",
            details={"rule": rule, "value": value}
        )
        self.rule = rule
        self.value = value


class InsufficientDataFailure(PipelineError):
    """Raised when there is too little history to cross-validate a model."""

    stage = "training"

    def __init__(self, row_count: int, required: int, partition: str = "historical"):
        super().__init__(
            f"Insufficient {partition} data: {row_count} rows (need at least {required})",
            details={"row_count": row_count, "required": required, "partition": partition}
        )
        self.row_count = row_count
        self.required = required


class ModelFitFailure(PipelineError):
    """Raised when the model search cannot be fit on the training partition."""

    stage = "training"

    def __init__(self, reason: str):
        super().__init__(f"Model fit failed: {reason}", details={"reason": reason})
        self.reason = reason


class StoreIOFailure(PipelineError):
    """Raised when the historical store or a model artifact cannot be read or written."""

    stage = "persistence"

    def __init__(self, path: Any, reason: str):
        super().__init__(
            f"Storage error for {path}: {reason}",
            details={"path": str(path), "reason": reason}
        )
        self.path = path
        self.reason = reason
