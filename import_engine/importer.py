"""
import_engine.importer - Multi-file import orchestrator.

Pipeline for one run:

    received → parsed → validated → (preview: reported)
             → writing → synchronizing → verifying → success | failed

Up to four CSV files (organizations, projects, specimens, patients) are
parsed, normalized and validated in parallel.  Writing then happens
sequentially in dependency order inside ONE session transaction: every
row gets its own SAVEPOINT so a constraint violation only skips that
row, while any other failure rolls the whole run back.  Preview runs
the identical write path and always rolls back.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import config
from db import faults
from db.engine import session_scope
from db.faults import StorageFault, classify_fault
from db.models import (
    ENTITY_TYPES, MODEL_BY_TYPE, Organization, Patient, Project, Specimen,
    number_column,
)
from import_engine.csv_parser import parse_csv
from import_engine.errors import (
    ImportValidationFailed, ParseError, RowInsertError, SilentFailureError,
    TransactionFatalError, ValidationIssue,
)
from import_engine.field_map import FILE_FIELD_ALIASES, REFERENCE_FIELDS
from import_engine.normalizer import (
    IMPORT_MODES, MIGRATION, NormalizedFile, NormalizedRecord, normalize_file,
)
from import_engine.report import (
    EntityResult, ExecuteReport, PreviewReport, Verification,
)
from import_engine.resolver import MAP, STORAGE, ReferenceResolver
from import_engine.validator import all_rows_failed, validate_file
from import_engine.verifier import SILENT_FAILURE, build_failure_details, verify
from services.placeholder_service import ensure_unknown_entities
from services.sequence_service import next_number, sync_sequence

logger = logging.getLogger(__name__)

# Only one preview/execute may write at a time
_WRITE_LOCK = threading.Lock()

# Types whose rows get a generated number when migration rows carry none
_GENERATE_WHEN_MISSING = frozenset({"organizations", "patients"})


@dataclass
class PreparedFile:
    entity_type: str
    filename: str
    normalized: NormalizedFile
    valid: list[NormalizedRecord]
    issues: list[ValidationIssue]

    @property
    def total_rows(self) -> int:
        return self.normalized.parsed.total_rows


@dataclass
class _PendingPatientLink:
    specimen_id: str
    reference: str
    row: int


# ── Parse / normalize / validate ───────────────────────────────────────

def collect_uploads(files: dict[str, tuple[str, str | bytes]]) -> dict[str, tuple[str, str | bytes]]:
    """
    Map upload field names onto entity types.

    ``files`` is {field name: (filename, raw content)}; "collaborators"
    is accepted for organizations.  Raises ValueError for any other name.
    """
    uploads = {}
    for field_name, upload in files.items():
        entity_type = FILE_FIELD_ALIASES.get(field_name.strip().lower())
        if entity_type is None:
            raise ValueError(
                f"Unknown file field {field_name!r}. "
                f"Expected one of: {', '.join(ENTITY_TYPES)}"
            )
        uploads[entity_type] = upload
    return uploads


def _prepare(entity_type: str, filename: str, content: str | bytes,
             mode: str) -> PreparedFile:
    parsed = parse_csv(content, filename)
    normalized = normalize_file(parsed, entity_type, mode)
    valid, issues = validate_file(normalized)
    return PreparedFile(entity_type, filename, normalized, valid, issues)


def prepare_files(uploads: dict[str, tuple[str, str | bytes]],
                  mode: str) -> tuple[dict[str, PreparedFile], list[dict]]:
    """
    Parse every upload in a thread pool.

    A file that fails to parse is dropped with an error entry; the
    others carry on.  Returns ({entity_type: PreparedFile}, errors).
    """
    prepared: dict[str, PreparedFile] = {}
    errors: list[dict] = []
    if not uploads:
        return prepared, errors

    with ThreadPoolExecutor(max_workers=max(1, config.PARSE_WORKERS)) as executor:
        future_to_type = {
            executor.submit(_prepare, entity_type, filename, content, mode): (entity_type, filename)
            for entity_type, (filename, content) in uploads.items()
        }
        for future in as_completed(future_to_type):
            entity_type, filename = future_to_type[future]
            try:
                prepared[entity_type] = future.result()
            except ParseError as exc:
                logger.warning(str(exc))
                errors.append({"file": filename, "row": 0, "message": str(exc)})

    return prepared, errors


# ── Writing ────────────────────────────────────────────────────────────

def _chunks(records: list, size: int) -> Iterator[list]:
    size = max(1, size)
    for start in range(0, len(records), size):
        yield records[start:start + size]


def _columns(model, fields: dict) -> dict:
    table_columns = model.__table__.columns
    return {k: v for k, v in fields.items()
            if k in table_columns and k not in REFERENCE_FIELDS}


class BatchImporter:
    """
    Writes prepared files for one run through a single session.

    The caller owns the transaction: BatchImporter never commits or
    rolls back, it only opens per-row savepoints.
    """

    def __init__(self, session: Session, mode: str = MIGRATION,
                 generated_by: str = "system"):
        if mode not in IMPORT_MODES:
            raise ValueError(f"Unknown import mode: {mode!r}")
        self.session = session
        self.mode = mode
        self.generated_by = generated_by
        self.stage = "writing"
        self.results: dict[str, EntityResult] = {}
        self.sequence_updates: dict[str, str] = {}
        self.resolver = ReferenceResolver(session, ensure_unknown_entities(session))
        self._pending_patients: list[_PendingPatientLink] = []
        self._builders: dict[str, Callable[[NormalizedRecord, int], object]] = {
            "organizations": self._build_organization,
            "projects":      self._build_project,
            "specimens":     self._build_specimen,
            "patients":      self._build_patient,
        }

    def run(self, prepared: dict[str, PreparedFile]) -> dict[str, EntityResult]:
        """
        Write every prepared file in dependency order.

        Raises TransactionFatalError for anything that is not a
        row-level storage rejection; the caller must roll back.
        """
        try:
            for entity_type in ENTITY_TYPES:
                pf = prepared.get(entity_type)
                if pf is None:
                    continue
                self.stage = f"writing {entity_type}"
                logger.info(f"Writing {len(pf.valid)} {entity_type} "
                            f"({pf.total_rows - len(pf.valid)} invalid rows skipped)")
                self.results[entity_type] = self.write(pf)

                self.stage = f"synchronizing {entity_type}"
                self.sequence_updates[entity_type] = sync_sequence(
                    self.session, entity_type).description

            self.stage = "linking patients"
            self.link_deferred_patients()
        except TransactionFatalError:
            raise
        except Exception as exc:
            fault = classify_fault(exc) if isinstance(exc, DBAPIError) else None
            raise TransactionFatalError(str(exc), self.stage, fault) from exc
        return self.results

    def write(self, pf: PreparedFile) -> EntityResult:
        result = EntityResult(total=pf.total_rows)
        result.skipped = pf.total_rows - len(pf.valid)

        for chunk in _chunks(pf.valid, config.IMPORT_CHUNK_SIZE):
            existing = self._prefetch_existing(pf.entity_type, chunk)
            for record in chunk:
                try:
                    self._write_row(record, existing, result)
                except RowInsertError as exc:
                    logger.warning(f"{record.file} row {record.row}: {exc}")
                    result.add_error(record.file, record.row, str(exc), exc.category)
        return result

    def link_deferred_patients(self) -> int:
        """
        Re-resolve specimen → patient references that pointed at rows not
        yet written.  Returns how many specimens were relinked.
        """
        linked = 0
        for pending in self._pending_patients:
            resolution = self.resolver.resolve("patients", pending.reference, pending.row)
            if resolution.source not in (MAP, STORAGE):
                continue
            self.session.execute(
                update(Specimen)
                .where(Specimen.id == pending.specimen_id)
                .values(patient_id=resolution.key)
            )
            linked += 1
        if linked:
            logger.info(f"Linked {linked} specimens to patients written later in the run")
        self._pending_patients.clear()
        return linked

    # ── Private helpers ────────────────────────────────────────────────

    def _prefetch_existing(self, entity_type: str, chunk: list[NormalizedRecord]) -> dict[int, str]:
        """{number: key} for numbers in the chunk that existed before this run."""
        if self.mode != MIGRATION:
            return {}
        numbers = {r.external_number for r in chunk
                   if r.external_number is not None and r.external_number > 0}
        if not numbers:
            return {}
        model = MODEL_BY_TYPE[entity_type]
        col = number_column(model)
        rows = self.session.execute(
            select(col, model.id).where(col.in_(numbers))
        ).all()
        return {n: key for n, key in rows
                if not self.resolver.created_in_run(entity_type, n)}

    def _write_row(self, record: NormalizedRecord, existing: dict[int, str],
                   result: EntityResult) -> None:
        entity_type = record.entity_type
        number = record.external_number
        file_number = number

        if self.mode == MIGRATION:
            if number is None:
                if entity_type not in _GENERATE_WHEN_MISSING:
                    label = entity_type[:-1].capitalize()
                    raise RowInsertError(
                        f"{label} has no usable numeric ID "
                        f"(got {record.external_number_raw!r})")
                number = next_number(self.session, entity_type, self.generated_by)
            elif number <= 0:
                column = MODEL_BY_TYPE[entity_type].number_attr
                message = f"{column} {number} is reserved"
                raise RowInsertError(message, StorageFault(faults.CONSTRAINT, message,
                                                           entity_type, column))
            elif number in existing:
                self.resolver.register(entity_type, number, existing[number])
                if entity_type == "patients":
                    self.resolver.register_alias("patients", record.get("external_id"),
                                                 existing[number])
                result.existing += 1
                result.skipped += 1
                return
        else:
            number = next_number(self.session, entity_type, self.generated_by)

        entity = self._builders[entity_type](record, number)
        self._insert(entity, f"{entity_type} {number}")

        if self.mode == MIGRATION:
            self.resolver.register(entity_type, number, entity.id, created=True)
        else:
            # dependents in the same upload cite the file's number, not the generated one
            self.resolver.mark_created(entity_type, number)
            if file_number is not None:
                self.resolver.register(entity_type, file_number, entity.id)
        if entity_type == "patients":
            self.resolver.register_alias("patients", record.get("external_id"), entity.id)
        elif entity_type == "specimens":
            self._track_patient_link(record, entity)
        result.imported += 1

    def _track_patient_link(self, record: NormalizedRecord, specimen: Specimen) -> None:
        # Patients are written after specimens; retry unmatched references then
        patient_ref = record.get("patient_reference")
        if patient_ref is not None and specimen.patient_id == self.resolver.unknown_keys["patients"]:
            self._pending_patients.append(
                _PendingPatientLink(specimen.id, patient_ref, record.row))

    def _insert(self, entity, label: str) -> None:
        try:
            with self.session.begin_nested():
                self.session.add(entity)
        except (IntegrityError, DataError) as exc:
            fault = classify_fault(exc)
            raise RowInsertError(f"Failed to insert {label}: {fault.message}", fault) from exc

    def _build_organization(self, record: NormalizedRecord, number: int) -> Organization:
        return Organization(organization_number=number,
                            **_columns(Organization, record.fields))

    def _build_project(self, record: NormalizedRecord, number: int) -> Project:
        org = self.resolver.resolve("organizations",
                                    record.get("organization_reference"), record.row)
        return Project(project_number=number, organization_id=org.key,
                       **_columns(Project, record.fields))

    def _build_specimen(self, record: NormalizedRecord, number: int) -> Specimen:
        project = self.resolver.resolve("projects",
                                        record.get("project_reference"), record.row)
        fields = _columns(Specimen, record.fields)
        fields.setdefault("tube_id", f"MIGRATED-{number}")
        specimen = Specimen(specimen_number=number, project_id=project.key, **fields)

        patient_ref = record.get("patient_reference")
        if patient_ref is not None:
            found = self.resolver.lookup("patients", patient_ref)
            specimen.patient_id = (found.key if found is not None
                                   else self.resolver.unknown_keys["patients"])
        return specimen

    def _build_patient(self, record: NormalizedRecord, number: int) -> Patient:
        return Patient(patient_number=number, **_columns(Patient, record.fields))


# ── Orchestration ──────────────────────────────────────────────────────

def _prepare_run(files, mode: str, report) -> dict[str, PreparedFile]:
    if mode not in IMPORT_MODES:
        raise ValueError(f"Unknown import mode: {mode!r}")

    uploads = collect_uploads(files)
    logger.info(f"Import received: {sorted(uploads)} ({mode} mode)")

    prepared, parse_errors = prepare_files(uploads, mode)
    report.errors.extend(parse_errors)
    logger.info(f"Import parsed: {sum(p.total_rows for p in prepared.values())} rows "
                f"in {len(prepared)} files")

    failed_files = []
    for entity_type in ENTITY_TYPES:
        pf = prepared.get(entity_type)
        if pf is None:
            continue
        report.errors.extend(issue.to_dict() for issue in pf.issues)
        if pf.normalized.unmatched_headers:
            report.warnings.append(
                f"{pf.filename}: ignored unrecognised columns "
                f"{', '.join(pf.normalized.unmatched_headers)}")
        if all_rows_failed(pf.normalized, pf.valid):
            failed_files.append(pf.filename)

    logger.info(f"Import validated: {len(report.errors)} errors")
    if failed_files:
        raise ImportValidationFailed(failed_files, list(report.errors))
    return prepared


def _fallback_warnings(resolver: ReferenceResolver) -> list[str]:
    counts: dict[str, int] = {}
    for note in resolver.notes:
        counts[note.entity_type] = counts.get(note.entity_type, 0) + 1
    return [f"{n} {entity_type} references were missing or unresolved "
            f"and now point at the Unknown record"
            for entity_type, n in counts.items()]


def preview_import(files: dict[str, tuple[str, str | bytes]],
                   mode: str = MIGRATION) -> PreviewReport:
    """
    Simulate an import: same parse/validate/write path as execute, but
    the transaction is always rolled back.

    Raises ImportValidationFailed when every row of a file is invalid
    and TransactionFatalError when the simulated write fails.
    """
    report = PreviewReport()
    prepared = _prepare_run(files, mode, report)

    for entity_type, pf in prepared.items():
        report.sample_data[entity_type] = [
            r.raw for r in pf.normalized.records[:config.PREVIEW_SAMPLE_ROWS]
        ]

    with _WRITE_LOCK, session_scope() as session:
        try:
            batch = BatchImporter(session, mode)
            batch.run(prepared)
        finally:
            session.rollback()

    report.results = {t: batch.results[t] for t in ENTITY_TYPES if t in batch.results}
    for result in report.results.values():
        report.errors.extend(result.errors)
    report.warnings.extend(_fallback_warnings(batch.resolver))
    logger.info("Import preview reported; nothing was persisted")
    return report


def execute_import(files: dict[str, tuple[str, str | bytes]],
                   mode: str = MIGRATION,
                   generated_by: str = "system") -> ExecuteReport:
    """
    Import up to four CSV files as one transaction.

    Returns an ExecuteReport.  ``success`` is False (with ``details``)
    when the run was rolled back or when the commit persisted nothing.
    Raises ImportValidationFailed before writing when every row of a
    file is invalid.
    """
    report = ExecuteReport()
    prepared = _prepare_run(files, mode, report)
    report.total_files = len(prepared)
    report.total_records = sum(pf.total_rows for pf in prepared.values())

    with _WRITE_LOCK, session_scope() as session:
        report.stage = "writing"
        stage = "writing"
        batch = None
        try:
            batch = BatchImporter(session, mode, generated_by)
            batch.run(prepared)
            stage = "committing"
            session.commit()
        except TransactionFatalError as exc:
            session.rollback()
            logger.exception(f"Import failed during {exc.stage}; all changes rolled back")
            _collect(report, batch)
            return _fail(report, session, exc.stage,
                         f"Import failed and was rolled back: {exc}",
                         fault=exc.fault)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception(f"Import failed during {stage}; all changes rolled back")
            if batch is not None:
                _collect(report, batch)
            return _fail(report, session, stage,
                         f"Import failed and was rolled back: {exc}",
                         fault=classify_fault(exc))

        _collect(report, batch)
        report.stage = "verifying"
        try:
            verification = verify(session, report.total_records)
        except SQLAlchemyError as exc:
            logger.exception("Post-import verification failed")
            return _fail(report, session, "verifying",
                         f"Import committed but could not be verified: {exc}",
                         fault=classify_fault(exc), committed=True)
        report.validation = verification

        if verification.status == SILENT_FAILURE:
            exc = SilentFailureError(verification.expected, verification.actual)
            logger.error(str(exc))
            report.stage = "failed"
            report.message = str(exc)
            report.details = build_failure_details(
                "Post-import validation", report.total_files, verification, report.errors)
            return report

    report.success = True
    report.stage = "success"
    report.message = "Multi-file import completed successfully"
    logger.info(f"Import committed: {report.validation.actual} records "
                f"({report.validation.success_rate}% of {report.validation.expected})")
    return report


def _collect(report: ExecuteReport, batch: BatchImporter) -> None:
    report.results = {t: batch.results[t] for t in ENTITY_TYPES if t in batch.results}
    report.sequence_updates = dict(batch.sequence_updates)
    for result in report.results.values():
        report.errors.extend(result.errors)
    report.warnings.extend(_fallback_warnings(batch.resolver))


def _fail(report: ExecuteReport, session: Session, stage: str, message: str,
          fault: Optional[StorageFault] = None,
          committed: bool = False) -> ExecuteReport:
    report.stage = "failed"
    report.success = False
    report.message = message
    if not committed:
        report.sequence_updates = {}
    try:
        verification = verify(session, report.total_records)
    except SQLAlchemyError:
        logger.exception("Diagnostic row count after rollback failed")
        verification = Verification(report.total_records, 0, {}, 0.0, "unavailable")
    report.validation = verification
    report.details = build_failure_details(stage, report.total_files, verification, report.errors)
    if fault is not None:
        report.details["fault"] = fault.to_dict()
    return report
