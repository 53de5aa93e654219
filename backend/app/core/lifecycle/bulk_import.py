"""
Bulk import validator.

Turns rows that an external CSV/spreadsheet front-end has already split into
cells into question drafts for CountReconciler.bulk_create_questions. Invalid
rows are skipped and reported with one reason string each; they never abort
the import.

Row shape (mapping):
    text: question text
    options: list of option cell strings, in column order
    correct_option: int, digit string, or option letter ("A" = first option)
    row_number: optional source row number used in skip reports

Numeric correct-option values are converted from 1-based to the internal
0-based index exactly once, here, when IMPORT_ONE_BASED_INDEX is on.
"""

import string
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from app.core.config import settings
from app.core.error_responses import ErrorMessages
from app.models import Question

from .errors import ValidationError

if TYPE_CHECKING:
    from .count_reconciler import CountReconciler

MIN_IMPORT_OPTIONS = 2


@dataclass(frozen=True)
class SkippedRow:
    row_number: int
    reason: str


@dataclass
class ImportValidation:
    """Validator output: drafts ready for insertion plus the rejected rows.

    ``draft_rows[i]`` is the source row number of ``drafts[i]``.
    """

    drafts: List[Dict[str, Any]] = field(default_factory=list)
    draft_rows: List[int] = field(default_factory=list)
    skipped: List[SkippedRow] = field(default_factory=list)


@dataclass
class BulkImportResult:
    success_count: int
    skipped: List[SkippedRow] = field(default_factory=list)
    questions: List[Question] = field(default_factory=list)


def _clean_options(cells: Any) -> Tuple[List[str], Optional[str]]:
    """Strip cells and drop trailing empties. Returns (options, error)."""
    if not isinstance(cells, (list, tuple)):
        return [], "Options must be a list of cells."

    options = ["" if cell is None else str(cell).strip() for cell in cells]
    while options and not options[-1]:
        options.pop()

    for position, text in enumerate(options, start=1):
        if not text:
            return [], f"Option {position} is empty."
    if len(options) < MIN_IMPORT_OPTIONS:
        return [], f"At least {MIN_IMPORT_OPTIONS} non-empty options are required."
    return options, None


def _resolve_correct_index(
    raw: Any, option_count: int, one_based: bool
) -> Tuple[Optional[int], Optional[str]]:
    """Map a correct-option cell to a 0-based index. Returns (index, error)."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None, "Correct option is missing."

    if isinstance(raw, bool):
        return None, f"Correct option '{raw}' is not a number or an option letter."

    if isinstance(raw, int):
        index = raw - 1 if one_based else raw
    elif isinstance(raw, str):
        value = raw.strip()
        if value.isdigit():
            index = int(value) - 1 if one_based else int(value)
        elif len(value) == 1 and value.upper() in string.ascii_uppercase:
            index = string.ascii_uppercase.index(value.upper())
        else:
            return None, f"Correct option '{raw}' is not a number or an option letter."
    else:
        return None, f"Correct option '{raw}' is not a number or an option letter."

    if not 0 <= index < option_count:
        return None, (
            f"Correct option {raw} is out of range for {option_count} options."
        )
    return index, None


def validate_import_rows(
    rows: Sequence[Mapping[str, Any]], one_based: Optional[bool] = None
) -> ImportValidation:
    """Validate parsed rows into question drafts.

    Each row needs non-empty text, at least two non-empty options and a
    correct option that addresses one of them.

    Args:
        rows: Parsed rows (see module docstring for the shape).
        one_based: Whether numeric correct-option values count from 1.
            Defaults to IMPORT_ONE_BASED_INDEX.
    """
    if one_based is None:
        one_based = settings.IMPORT_ONE_BASED_INDEX

    validation = ImportValidation()
    for position, row in enumerate(rows, start=1):
        row_number = row.get("row_number") or position

        text = row.get("text")
        if not isinstance(text, str) or not text.strip():
            validation.skipped.append(
                SkippedRow(row_number, "Question text is missing.")
            )
            continue

        options, error = _clean_options(row.get("options"))
        if error:
            validation.skipped.append(SkippedRow(row_number, error))
            continue

        index, error = _resolve_correct_index(
            row.get("correct_option"), len(options), one_based
        )
        if error:
            validation.skipped.append(SkippedRow(row_number, error))
            continue

        validation.drafts.append(
            {
                "text": text.strip(),
                "options": [{"text": option} for option in options],
                "correct_option_index": index,
            }
        )
        validation.draft_rows.append(row_number)

    return validation


async def bulk_import_questions(
    reconciler: "CountReconciler",
    test_id: str,
    rows: Sequence[Mapping[str, Any]],
    one_based: Optional[bool] = None,
) -> BulkImportResult:
    """Validate ``rows`` and insert the valid ones in one transaction.

    Raises:
        ValidationError: If there are no rows, or more than IMPORT_MAX_ROWS.
        TestNotFound: If the test does not exist (nothing is written).
    """
    if not rows:
        raise ValidationError(
            ErrorMessages.EMPTY_IMPORT, {"rows": ErrorMessages.EMPTY_IMPORT}
        )
    if len(rows) > settings.IMPORT_MAX_ROWS:
        message = ErrorMessages.too_many_rows(len(rows), settings.IMPORT_MAX_ROWS)
        raise ValidationError(message, {"rows": message})

    validation = validate_import_rows(rows, one_based)
    created = await reconciler.bulk_create_questions(test_id, validation.drafts)

    skipped = list(validation.skipped)
    for error in created.errors:
        row_number = validation.draft_rows[error["index"]]
        skipped.append(SkippedRow(row_number, error["reason"]))
    skipped.sort(key=lambda row: row.row_number)

    return BulkImportResult(
        success_count=created.success_count,
        skipped=skipped,
        questions=created.questions,
    )
