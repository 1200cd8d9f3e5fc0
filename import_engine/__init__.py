"""
import_engine - Multi-file CSV migration/import pipeline.

Public API:
    preview_import(files, mode="migration")                      → PreviewReport
    execute_import(files, mode="migration", generated_by=...)    → ExecuteReport

``files`` maps an upload field name (organizations, projects,
specimens, patients; "collaborators" for organizations) to a
(filename, raw CSV content) pair.
"""

from import_engine.importer import (                 # noqa: F401
    BatchImporter, execute_import, preview_import,
)
from import_engine.normalizer import MIGRATION, PROJECT, IMPORT_MODES   # noqa: F401
from import_engine.report import (                   # noqa: F401
    EntityResult, ExecuteReport, PreviewReport, Verification,
)
from import_engine.errors import (                   # noqa: F401
    ImportEngineError, ImportValidationFailed, ParseError, RowInsertError,
    SilentFailureError, TransactionFatalError,
)
