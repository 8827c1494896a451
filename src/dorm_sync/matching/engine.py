"""
Reconciliation engine.
Runs one collection's sync: normalize, resolve references, match, plan,
apply in batches, and record the run log.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

from ..config import CollectionSpec, SyncConfig
from ..models.operations import MutationOp
from ..models.run_log import RunLog, SyncResult, build_collection_logs
from ..parsers.normalizer import NormalizationResult, RecordNormalizer
from ..parsers.table_reader import TableSource, read_table
from ..reports.audit_log import AuditLogger
from ..store.applier import BatchedApplier
from ..store.base import DocumentStore
from ..utils.clock import Clock, clock_for_threshold, system_clock
from ..utils.exceptions import AuditLogError, BatchCommitFailed
from .matcher import IdentityMatcher
from .planner import MutationPlanner, Plan
from .resolver import AliasTable, ReferenceIndex, ReferenceResolver, ResolutionResult

logger = logging.getLogger(__name__)

STATUS_COMMITTED = "committed"
STATUS_DRY_RUN = "dry_run"
STATUS_FAILED = "failed"


def normalize_dataset(
    config: SyncConfig,
    collection: str,
    source: Optional[TableSource] = None,
    filename: Optional[str] = None,
) -> NormalizationResult:
    """
    Read and normalize the dataset for a collection. Touches no store.

    Raises:
        ConfigurationError: If the collection is not configured
        FatalInputError: If the input is unreadable or lacks required columns
    """
    spec = config.collection(collection)
    if source is None:
        source = Path(config.input.default_file)
    df = read_table(source, config.input, filename=filename)
    return RecordNormalizer(spec, config.input).normalize(df)


class ReconciliationEngine:
    """
    Main engine that reconciles one store collection against the dataset.

    One engine serves every configured collection; the collection spec
    picked per run decides keys, fields, references and derivations.
    """

    def __init__(
        self,
        config: SyncConfig,
        store: DocumentStore,
        clock: Clock = system_clock,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Initialize the reconciliation engine.

        Args:
            config: Application configuration
            store: Document store backend
            clock: Source of "today" for derived status
            audit_logger: Run log sink (defaults to the configured log dir)
        """
        self.config = config
        self.store = store
        self.clock = clock_for_threshold(config.engine.status_threshold_date, fallback=clock)
        self.aliases = AliasTable(config.engine.alias_table)
        self.audit_logger = audit_logger or AuditLogger(Path(config.audit.log_dir))

    def normalize(
        self,
        collection: str,
        source: Optional[TableSource] = None,
        filename: Optional[str] = None,
    ) -> NormalizationResult:
        return normalize_dataset(self.config, collection, source, filename=filename)

    def plan(
        self, collection: str, normalized: NormalizationResult
    ) -> tuple[list[MutationOp], Plan]:
        """
        Compute every operation for a collection without writing.

        Returns:
            (ordered op list including reference ops, collection plan)
        """
        spec = self.config.collection(collection)
        resolutions = self._resolve_references(spec, normalized)

        documents = self.store.fetch_all(collection)
        rejected_keys = [row.natural_key for row in normalized.rejected if row.natural_key]
        match_result = IdentityMatcher(spec.natural_key).match(
            normalized.records, documents, protected_keys=rejected_keys
        )

        indexes: dict[str, ReferenceIndex] = {
            ref.id_field: resolutions[(ref.collection, ref.name_field)].index
            for ref in spec.references
        }
        planner = MutationPlanner(collection, spec, self.store, clock=self.clock)
        plan = planner.plan(normalized.records, match_result, indexes)

        ops: list[MutationOp] = []
        for resolution in resolutions.values():
            ops.extend(resolution.ops)
        ops.extend(plan.ops)
        return ops, plan

    def reconcile(
        self,
        collection: str,
        source: Optional[TableSource] = None,
        dry_run: bool = False,
        filename: Optional[str] = None,
        normalized: Optional[NormalizationResult] = None,
    ) -> SyncResult:
        """
        Reconcile a collection with the dataset.

        Args:
            collection: Configured collection name (e.g. "employees")
            source: Dataset path or stream (defaults to the configured file)
            dry_run: Compute everything but write nothing to the store
            filename: Name hint for stream sources
            normalized: Dataset already read by ``normalize_dataset``

        Returns:
            SyncResult with the op list, counts and run log

        Raises:
            FatalInputError: Before any store I/O, for unusable input
            BatchCommitFailed: If a batch fails; ``result`` holds the partial run
        """
        start_time = datetime.now()
        if source is None:
            source_label = self.config.input.default_file
        elif isinstance(source, (str, Path)):
            source_label = str(source)
        else:
            source_label = filename or "<stream>"

        logger.info(
            f"Starting {'dry-run ' if dry_run else ''}sync of {collection} from {source_label}"
        )

        if normalized is None:
            normalized = self.normalize(collection, source, filename=filename)
        ops, plan = self.plan(collection, normalized)

        applier = BatchedApplier(self.store, self.config.engine.batch_size_limit)
        try:
            applied = applier.apply(ops, dry_run=dry_run)
        except BatchCommitFailed as e:
            result = self._finish(
                collection, source_label, dry_run, ops, normalized, plan,
                batches_total=e.total_batches,
                batches_committed=e.batch_index,
                start_time=start_time,
                status=STATUS_FAILED,
                error=str(e),
            )
            e.result = result
            raise

        result = self._finish(
            collection, source_label, dry_run, ops, normalized, plan,
            batches_total=applied.total_batches,
            batches_committed=applied.committed_batches,
            start_time=start_time,
            status=STATUS_DRY_RUN if dry_run else STATUS_COMMITTED,
        )
        logger.info(
            f"Sync of {collection} complete in {result.processing_time_seconds:.2f}s: "
            f"{len(ops)} operations, {result.rejected_count} rejected rows, "
            f"{result.unresolved_count} unresolved references"
        )
        return result

    def _resolve_references(
        self, spec: CollectionSpec, normalized: NormalizationResult
    ) -> dict[tuple[str, str], ResolutionResult]:
        """One index per referenced collection, shared by references into it."""
        resolver = ReferenceResolver(self.store, self.aliases)
        resolutions: dict[tuple[str, str], ResolutionResult] = {}

        for ref in spec.references:
            key = (ref.collection, ref.name_field)
            if key not in resolutions:
                documents = self.store.fetch_all(ref.collection)
                resolutions[key] = resolver.build_index(ref.collection, ref.name_field, documents)
            resolver.resolve(
                resolutions[key],
                normalized.reference_names(ref.id_field),
                create_missing=ref.create_missing,
            )

        return resolutions

    def _finish(
        self,
        collection: str,
        source_label: str,
        dry_run: bool,
        ops: list[MutationOp],
        normalized: NormalizationResult,
        plan: Plan,
        batches_total: int,
        batches_committed: int,
        start_time: datetime,
        status: str,
        error: Optional[str] = None,
    ) -> SyncResult:
        run_log = RunLog(
            timestamp=start_time,
            collection=collection,
            dry_run=dry_run,
            status=status,
            source=source_label,
            collections=build_collection_logs(ops),
            operations=tuple(ops),
            rejected_rows=tuple(normalized.rejected),
            unresolved_references=tuple(plan.unresolved),
            skipped_blank_rows=normalized.skipped_blank_rows,
            batches_total=batches_total,
            batches_committed=batches_committed,
            error=error,
        )
        try:
            log_path = self.audit_logger.write(run_log)
        except AuditLogError as e:
            logger.error(f"Run log not saved: {e}")
            log_path = None
        return SyncResult(
            run_log=run_log,
            records_total=len(normalized.records),
            processing_time_seconds=(datetime.now() - start_time).total_seconds(),
            log_path=str(log_path) if log_path else None,
        )
