"""SQLite persistence for the catalog, imported findings, analysis snapshots
and the export history.

Every write is a single transaction: a catalog replacement or a checklist
import is either fully applied or not applied at all.
"""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel
from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker

from ..compliance.families import derive_families
from ..compliance.mapping import resolve_controls
from ..models.catalog import Catalog, CciEntry
from ..models.compliance import ComplianceStat
from ..models.finding import ResolvedFinding
from .aggregator import normalize_status
from .errors import StoreError


def _join(values: Iterable[str]) -> str:
    return ",".join(values)


def _split(value: Optional[str]) -> list[str]:
    return [v for v in (value or "").split(",") if v]


class Base(DeclarativeBase):
    pass


class CciMapping(Base):
    __tablename__ = "cci_mappings"

    cci_id: Mapped[str] = mapped_column(String(20), primary_key=True)
    nist_controls: Mapped[str] = mapped_column(Text, default="")
    control_families: Mapped[str] = mapped_column(Text, default="")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class StigFile(Base):
    __tablename__ = "stig_files"

    file_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_name: Mapped[str] = mapped_column(String(255), index=True)
    file_path: Mapped[str] = mapped_column(Text, default="")
    file_type: Mapped[str] = mapped_column(String(10))  # CKL, CKLB
    stig_title: Mapped[str] = mapped_column(String(255), default="")
    stig_version: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    release_info: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    release_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    import_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, index=True)
    file_size: Mapped[int] = mapped_column(BigInteger, default=0)
    record_count: Mapped[int] = mapped_column(Integer, default=0)
    processing_status: Mapped[str] = mapped_column(String(20), default="Imported")

    vulnerabilities: Mapped[list["Vulnerability"]] = relationship(
        back_populates="stig_file", cascade="all, delete-orphan"
    )


class Vulnerability(Base):
    __tablename__ = "vulnerabilities"

    vulnerability_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[int] = mapped_column(ForeignKey("stig_files.file_id"), index=True)
    group_id: Mapped[str] = mapped_column(String(50), default="")
    rule_id: Mapped[str] = mapped_column(String(100), default="")
    rule_version: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    rule_title: Mapped[str] = mapped_column(Text, default="")
    severity: Mapped[str] = mapped_column(String(20), default="", index=True)
    status: Mapped[str] = mapped_column(String(50), default="", index=True)
    stig_name: Mapped[str] = mapped_column(String(255), default="")
    source_file: Mapped[str] = mapped_column(String(255), default="")

    # Comma-separated lists
    cci_references: Mapped[str] = mapped_column(Text, default="")
    nist_controls: Mapped[str] = mapped_column(Text, default="")
    control_families: Mapped[str] = mapped_column(Text, default="")

    discussion: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    check_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fix_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    finding_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    stig_file: Mapped[StigFile] = relationship(back_populates="vulnerabilities")

    def to_finding(self) -> ResolvedFinding:
        return ResolvedFinding(
            group_id=self.group_id,
            rule_id=self.rule_id,
            rule_version=self.rule_version,
            title=self.rule_title,
            severity=self.severity,
            status=self.status,
            discussion=self.discussion,
            check_content=self.check_content,
            fix_text=self.fix_text,
            finding_details=self.finding_details,
            comments=self.comments,
            cci_references=_split(self.cci_references),
            source_file=self.source_file,
            stig_name=self.stig_name,
            nist_controls=_split(self.nist_controls),
            families=_split(self.control_families),
        )


class AnalysisResult(Base):
    __tablename__ = "analysis_results"

    analysis_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    analysis_type: Mapped[str] = mapped_column(String(50))  # Compliance, Family, File
    file_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    control_family: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    source_file: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    total_count: Mapped[int] = mapped_column(Integer, default=0)
    open_count: Mapped[int] = mapped_column(Integer, default=0)
    not_a_finding_count: Mapped[int] = mapped_column(Integer, default=0)
    not_reviewed_count: Mapped[int] = mapped_column(Integer, default=0)
    not_applicable_count: Mapped[int] = mapped_column(Integer, default=0)
    high_count: Mapped[int] = mapped_column(Integer, default=0)
    medium_count: Mapped[int] = mapped_column(Integer, default=0)
    low_count: Mapped[int] = mapped_column(Integer, default=0)
    compliance_percentage: Mapped[float] = mapped_column(Float, default=0.0)
    analysis_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        Index("ix_analysis_scope", "analysis_type", "file_id", "control_family", "source_file"),
    )

    def to_stat(self) -> ComplianceStat:
        return ComplianceStat(
            family=self.control_family,
            source_file=self.source_file,
            total=self.total_count,
            open=self.open_count,
            compliant=self.not_a_finding_count,
            not_reviewed=self.not_reviewed_count,
            not_applicable=self.not_applicable_count,
            high=self.high_count,
            medium=self.medium_count,
            low=self.low_count,
            compliance_percentage=self.compliance_percentage,
        )


class ExportHistory(Base):
    __tablename__ = "export_history"

    export_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    export_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    export_type: Mapped[str] = mapped_column(String(50))  # Markdown, JSON, Excel
    file_path: Mapped[str] = mapped_column(Text, default="")
    record_count: Mapped[int] = mapped_column(Integer, default=0)
    export_status: Mapped[str] = mapped_column(String(20), default="Success")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class StigFileRecord(BaseModel):
    file_id: int
    file_name: str
    file_type: str
    stig_title: str
    stig_version: Optional[str] = None
    release_info: Optional[str] = None
    release_date: Optional[date] = None
    import_date: datetime
    file_size: int = 0
    record_count: int
    processing_status: str = "Imported"


class ExportRecord(BaseModel):
    export_id: int
    export_date: datetime
    export_type: str
    file_path: str
    record_count: int
    export_status: str
    error_message: Optional[str] = None


def _control_matches(control: str, wanted: str) -> bool:
    """AC-2 matches AC-2, AC-2 (1) and AC-2(1), but not AC-20."""
    return control == wanted or control.startswith((wanted + " ", wanted + "("))


class FindingStore:
    """Persistence for catalog, findings, analysis snapshots and exports."""

    def __init__(self, url: str = "sqlite:///:memory:"):
        try:
            if url.startswith("sqlite:///") and not url.endswith(":memory:"):
                Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(url)
            Base.metadata.create_all(self.engine)
        except (OSError, SQLAlchemyError) as e:
            raise StoreError(f"Cannot open database {url}: {e}") from e
        self._session = sessionmaker(self.engine, expire_on_commit=False)

    def close(self) -> None:
        self.engine.dispose()

    # ----------------------------------------------------------------- catalog

    def replace_catalog(self, catalog: Catalog) -> int:
        """Replace every stored CCI mapping with the given catalog."""
        try:
            with self._session.begin() as session:
                session.execute(delete(CciMapping))
                session.add_all(
                    CciMapping(
                        cci_id=entry.cci_id,
                        nist_controls=_join(entry.nist_controls),
                        control_families=_join(entry.families),
                        description=entry.definition,
                    )
                    for entry in catalog.values()
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Catalog replacement failed: {e}") from e
        return len(catalog)

    def load_catalog(self, reference_title: str = "") -> Catalog:
        try:
            with self._session() as session:
                rows = session.scalars(select(CciMapping).order_by(CciMapping.cci_id)).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Loading the catalog failed: {e}") from e
        entries = {
            row.cci_id: CciEntry(
                cci_id=row.cci_id,
                nist_controls=_split(row.nist_controls),
                definition=row.description,
            )
            for row in rows
        }
        return Catalog(entries=entries, source="database", reference_title=reference_title)

    def remap_findings(self, catalog: Catalog) -> int:
        """Re-resolve every stored finding against a new catalog.

        Controls and families are recomputed from each finding's stored CCI
        references. Returns the number of findings whose mapping changed.
        """
        changed = 0
        try:
            with self._session.begin() as session:
                for row in session.scalars(select(Vulnerability)).all():
                    controls = resolve_controls(_split(row.cci_references), catalog)
                    nist_controls = _join(controls)
                    control_families = _join(derive_families(controls))
                    if nist_controls != row.nist_controls or control_families != row.control_families:
                        row.nist_controls = nist_controls
                        row.control_families = control_families
                        changed += 1
        except SQLAlchemyError as e:
            raise StoreError(f"Re-mapping stored findings failed: {e}") from e
        return changed

    # ---------------------------------------------------------------- findings

    def add_checklist(
        self,
        file_name: str,
        file_type: str,
        stig_title: str,
        findings: list[ResolvedFinding],
        file_path: str = "",
        stig_version: Optional[str] = None,
        release_info: Optional[str] = None,
        release_date: Optional[date] = None,
        file_size: int = 0,
        processing_status: str = "Imported",
    ) -> int:
        """Store one checklist and all its findings. Returns the new file_id."""
        try:
            with self._session.begin() as session:
                stig_file = StigFile(
                    file_name=file_name,
                    file_path=file_path,
                    file_type=file_type,
                    stig_title=stig_title,
                    stig_version=stig_version,
                    release_info=release_info,
                    release_date=release_date,
                    file_size=file_size,
                    record_count=len(findings),
                    processing_status=processing_status,
                )
                stig_file.vulnerabilities = [
                    Vulnerability(
                        group_id=f.group_id,
                        rule_id=f.rule_id,
                        rule_version=f.rule_version,
                        rule_title=f.title,
                        severity=f.severity,
                        status=f.status,
                        stig_name=f.stig_name,
                        source_file=f.source_file or file_name,
                        cci_references=_join(f.cci_references),
                        nist_controls=_join(f.nist_controls),
                        control_families=_join(f.families),
                        discussion=f.discussion,
                        check_content=f.check_content,
                        fix_text=f.fix_text,
                        finding_details=f.finding_details,
                        comments=f.comments,
                    )
                    for f in findings
                ]
                session.add(stig_file)
                session.flush()
                return stig_file.file_id
        except SQLAlchemyError as e:
            raise StoreError(f"Import of {file_name} failed: {e}") from e

    def query_findings(
        self,
        family: Optional[str] = None,
        file_id: Optional[int] = None,
        severity: Optional[str] = None,
        status: Optional[str] = None,
        nist_control: Optional[str] = None,
    ) -> list[ResolvedFinding]:
        """Stored findings matching every given filter.

        Families are matched exactly against the stored list and statuses
        by their normalized value, so both filters run after the query.
        nist_control matches a control and its enhancements, so "AC-2"
        selects findings mapped to AC-2 or AC-2 (1) but not AC-20. Results
        for a control query are ordered by source file, then group ID.
        """
        stmt = select(Vulnerability).order_by(Vulnerability.vulnerability_id)
        if file_id is not None:
            stmt = stmt.where(Vulnerability.file_id == file_id)
        if severity is not None:
            stmt = stmt.where(func.lower(Vulnerability.severity) == severity.lower())

        try:
            with self._session() as session:
                findings = [row.to_finding() for row in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise StoreError(f"Finding query failed: {e}") from e

        if family is not None:
            findings = [f for f in findings if family in f.families]
        if status is not None:
            wanted = normalize_status(status)
            findings = [
                f for f in findings
                if (normalize_status(f.status) == wanted if wanted else f.status == status)
            ]
        if nist_control is not None:
            wanted_control = nist_control.strip().upper()
            findings = [
                f for f in findings
                if any(_control_matches(c.upper(), wanted_control) for c in f.nist_controls)
            ]
            findings.sort(key=lambda f: (f.source_file, f.group_id))
        return findings

    def list_files(self) -> list[StigFileRecord]:
        try:
            with self._session() as session:
                rows = session.scalars(select(StigFile).order_by(StigFile.file_id)).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Listing checklists failed: {e}") from e
        return [
            StigFileRecord(
                file_id=row.file_id,
                file_name=row.file_name,
                file_type=row.file_type,
                stig_title=row.stig_title,
                stig_version=row.stig_version,
                release_info=row.release_info,
                release_date=row.release_date,
                import_date=row.import_date,
                file_size=row.file_size or 0,
                record_count=row.record_count,
                processing_status=row.processing_status or "Imported",
            )
            for row in rows
        ]

    def delete_file(self, file_id: int) -> bool:
        """Remove a checklist and its findings. Returns False if unknown."""
        try:
            with self._session.begin() as session:
                stig_file = session.get(StigFile, file_id)
                if stig_file is None:
                    return False
                session.delete(stig_file)
                session.execute(delete(AnalysisResult).where(AnalysisResult.file_id == file_id))
                return True
        except SQLAlchemyError as e:
            raise StoreError(f"Delete of file {file_id} failed: {e}") from e

    # --------------------------------------------------------------- snapshots

    def replace_snapshots(
        self,
        snapshots: list[tuple[str, ComplianceStat]],
        file_id: Optional[int] = None,
    ) -> None:
        """Replace every cached snapshot for an analysis scope.

        file_id None is the all-files scope. Old rows for the scope are
        deleted and the new (analysis_type, stat) pairs inserted.
        """
        try:
            with self._session.begin() as session:
                session.execute(
                    delete(AnalysisResult).where(
                        AnalysisResult.file_id.is_(None) if file_id is None
                        else AnalysisResult.file_id == file_id,
                    )
                )
                session.add_all(
                    AnalysisResult(
                        analysis_type=analysis_type,
                        file_id=file_id,
                        control_family=stat.family,
                        source_file=stat.source_file,
                        total_count=stat.total,
                        open_count=stat.open,
                        not_a_finding_count=stat.compliant,
                        not_reviewed_count=stat.not_reviewed,
                        not_applicable_count=stat.not_applicable,
                        high_count=stat.high,
                        medium_count=stat.medium,
                        low_count=stat.low,
                        compliance_percentage=stat.compliance_percentage,
                    )
                    for analysis_type, stat in snapshots
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Snapshot update failed: {e}") from e

    def load_snapshots(
        self,
        analysis_type: Optional[str] = None,
        file_id: Optional[int] = None,
    ) -> list[ComplianceStat]:
        stmt = select(AnalysisResult).order_by(AnalysisResult.analysis_id)
        stmt = stmt.where(
            AnalysisResult.file_id.is_(None) if file_id is None else AnalysisResult.file_id == file_id
        )
        if analysis_type is not None:
            stmt = stmt.where(AnalysisResult.analysis_type == analysis_type)
        try:
            with self._session() as session:
                return [row.to_stat() for row in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise StoreError(f"Loading snapshots failed: {e}") from e

    # ----------------------------------------------------------------- exports

    def record_export(
        self,
        export_type: str,
        file_path: str,
        record_count: int,
        status: str = "Success",
        error_message: Optional[str] = None,
    ) -> int:
        """Append one export attempt to the history. Returns its export_id."""
        try:
            with self._session.begin() as session:
                entry = ExportHistory(
                    export_type=export_type,
                    file_path=file_path,
                    record_count=record_count,
                    export_status=status,
                    error_message=error_message,
                )
                session.add(entry)
                session.flush()
                return entry.export_id
        except SQLAlchemyError as e:
            raise StoreError(f"Recording export of {file_path} failed: {e}") from e

    def list_exports(self) -> list[ExportRecord]:
        stmt = select(ExportHistory).order_by(ExportHistory.export_id)
        try:
            with self._session() as session:
                rows = session.scalars(stmt).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Loading the export history failed: {e}") from e
        return [
            ExportRecord(
                export_id=row.export_id,
                export_date=row.export_date,
                export_type=row.export_type,
                file_path=row.file_path,
                record_count=row.record_count,
                export_status=row.export_status,
                error_message=row.error_message,
            )
            for row in rows
        ]
