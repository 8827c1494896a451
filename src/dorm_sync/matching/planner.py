"""
Mutation planner.
Decides the minimal create/update/delete set that makes a collection
match the normalized dataset, including derived fields and orphan removal.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Optional
import logging

from ..config import CollectionSpec, DerivedFieldSpec
from ..models.operations import CreateOp, DeleteOp, MutationOp, OpReason, UpdateOp
from ..models.records import ExternalRecord, StoreDocument, UnresolvedReference
from ..store.base import DocumentStore
from ..utils.clock import Clock, system_clock
from .matcher import MatchResult
from .resolver import ReferenceIndex

logger = logging.getLogger(__name__)

STATUS_HOUSED = "housed"
STATUS_PENDING = "pending"
STATUS_PENDING_ASSIGNMENT = "pending_assignment"


def presence_status(has_reference: bool, arrival: Optional[date], today: date) -> str:
    """
    Derive an occupant's presence status.

    Not assigned anywhere -> pending_assignment; arrived on or before
    today -> housed; arriving later or arrival unknown -> pending.
    """
    if not has_reference:
        return STATUS_PENDING_ASSIGNMENT
    if arrival is None:
        return STATUS_PENDING
    arrival_day = arrival.date() if isinstance(arrival, datetime) else arrival
    return STATUS_HOUSED if arrival_day <= today else STATUS_PENDING


def values_equal(current: Any, target: Any) -> bool:
    """Compare a stored value with a target value, tolerant of storage types."""
    if isinstance(current, datetime) and isinstance(target, datetime):
        return current.replace(tzinfo=None) == target.replace(tzinfo=None)
    if isinstance(current, date) and isinstance(target, date):
        current_day = current.date() if isinstance(current, datetime) else current
        target_day = target.date() if isinstance(target, datetime) else target
        return current_day == target_day
    if isinstance(current, bool) or isinstance(target, bool):
        return current is target
    if isinstance(current, (int, float)) and isinstance(target, (int, float)):
        return float(current) == float(target)
    return current == target


def diff_fields(existing: Mapping[str, Any], target: Mapping[str, Any]) -> dict[str, Any]:
    """Fields of ``target`` whose stored value differs (missing counts as None)."""
    return {
        name: value
        for name, value in target.items()
        if not values_equal(existing.get(name), value)
    }


@dataclass
class Plan:
    """Planned operations for one collection."""

    collection: str
    ops: list[MutationOp] = field(default_factory=list)
    # Natural keys skipped because a reference could not be resolved
    skipped_keys: list[str] = field(default_factory=list)
    unresolved: list[UnresolvedReference] = field(default_factory=list)


class MutationPlanner:
    """Plans the op set for one collection from matched records."""

    def __init__(
        self,
        collection: str,
        spec: CollectionSpec,
        store: DocumentStore,
        clock: Clock = system_clock,
    ):
        self.collection = collection
        self.spec = spec
        self.store = store
        self.clock = clock

    def plan(
        self,
        records: list[ExternalRecord],
        match_result: MatchResult,
        references: Optional[dict[str, ReferenceIndex]] = None,
    ) -> Plan:
        """
        Compute operations for a collection.

        Args:
            records: Normalized records, one per natural key
            match_result: Existing documents per natural key
            references: Reference index per reference id field

        Returns:
            Plan with ops ordered: per-record creates/updates/duplicate
            deletes in dataset order, then orphan deletes
        """
        references = references or {}
        today = self.clock().date()
        plan = Plan(collection=self.collection)
        unresolved: dict[int, UnresolvedReference] = {}

        taken_ids = {
            doc.id
            for docs in match_result.matches.values()
            for doc in docs
        }
        taken_ids.update(doc.id for doc in match_result.orphans)
        taken_ids.update(doc.id for doc in match_result.unkeyed)
        taken_ids.update(doc.id for doc in match_result.protected)

        for record in records:
            reference_ids = self._reference_ids(record, references, unresolved)
            if reference_ids is None:
                plan.skipped_keys.append(record.natural_key)
                continue

            target = self.target_fields(record, reference_ids, today)
            existing = match_result.matches.get(record.natural_key, [])

            if not existing:
                doc_id = self._new_doc_id(record.natural_key, taken_ids)
                taken_ids.add(doc_id)
                plan.ops.append(
                    CreateOp(
                        collection=self.collection,
                        doc_id=doc_id,
                        data=target,
                        reason=OpReason.NEW_RECORD,
                        natural_key=record.natural_key,
                    )
                )
                continue

            primary, duplicates = existing[0], existing[1:]
            delta = diff_fields(primary.data, target)
            if delta:
                plan.ops.append(
                    UpdateOp(
                        collection=self.collection,
                        doc_id=primary.id,
                        delta=delta,
                        reason=OpReason.CHANGED_FIELDS,
                        natural_key=record.natural_key,
                    )
                )
            for dup in duplicates:
                logger.debug(f"Duplicate {self.collection}/{dup.id} for key {record.natural_key}")
                plan.ops.append(
                    DeleteOp(
                        collection=self.collection,
                        doc_id=dup.id,
                        reason=OpReason.DUPLICATE,
                        natural_key=record.natural_key,
                    )
                )

        if self.spec.orphan_policy == "delete":
            for doc in match_result.orphans:
                plan.ops.append(
                    DeleteOp(
                        collection=self.collection,
                        doc_id=doc.id,
                        reason=OpReason.ORPHAN,
                        natural_key=str(doc.get(self.spec.natural_key)),
                    )
                )
            untouched = match_result.unkeyed
        else:
            untouched = match_result.orphans + match_result.unkeyed

        # Documents outside the dataset may still point at collapsed duplicates
        plan.ops.extend(self._redirect_references(untouched, references))

        plan.unresolved = list(unresolved.values())
        logger.info(
            f"Planned {len(plan.ops)} operations for {self.collection} "
            f"({len(plan.skipped_keys)} records skipped for unresolved references)"
        )
        return plan

    def target_fields(
        self, record: ExternalRecord, reference_ids: dict[str, Optional[str]], today: date
    ) -> dict[str, Any]:
        """Normalized plus derived field values for a record."""
        target: dict[str, Any] = {self.spec.natural_key: record.natural_key}
        target.update(record.fields)
        target.update(reference_ids)
        for derived in self.spec.derived:
            target[derived.field] = self._derive(derived, target, today)
        return target

    def _derive(self, derived: DerivedFieldSpec, target: dict[str, Any], today: date) -> Any:
        if derived.kind == "presence_status":
            has_reference = (
                target.get(derived.reference) is not None if derived.reference else True
            )
            arrival = target.get(derived.source) if derived.source else None
            return presence_status(has_reference, arrival, today)
        if derived.kind == "count":
            return len(target.get(derived.source) or [])
        raise ValueError(f"Unknown derived field kind: {derived.kind}")

    def _reference_ids(
        self,
        record: ExternalRecord,
        references: dict[str, ReferenceIndex],
        unresolved: dict[int, UnresolvedReference],
    ) -> Optional[dict[str, Optional[str]]]:
        """Resolved id per reference field, or None if any name is unresolved."""
        ids: dict[str, Optional[str]] = {}
        for ref in self.spec.references:
            name = record.references.get(ref.id_field)
            if not name:
                ids[ref.id_field] = None
                continue

            index = references.get(ref.id_field)
            doc_id = index.lookup(name) if index else None
            if doc_id is None:
                entry = index.unresolved_for(name) if index else None
                if entry is None:
                    entry = UnresolvedReference(
                        collection=ref.collection, name=name, reason="not indexed"
                    )
                entry.dependent_keys.append(record.natural_key)
                unresolved.setdefault(id(entry), entry)
                logger.warning(
                    f"Skipping {self.collection} {record.natural_key}: "
                    f"{ref.collection} '{name}' unresolved ({entry.reason})"
                )
                return None
            ids[ref.id_field] = doc_id
        return ids

    def _new_doc_id(self, natural_key: str, taken_ids: set[str]) -> str:
        if (
            self.spec.natural_key_as_id
            and "/" not in natural_key
            and natural_key not in taken_ids
        ):
            return natural_key
        return self.store.new_id(self.collection)

    def _redirect_references(
        self, documents: list[StoreDocument], references: dict[str, ReferenceIndex]
    ) -> list[MutationOp]:
        ops: list[MutationOp] = []
        for doc in documents:
            delta: dict[str, Any] = {}
            for id_field, index in references.items():
                current = doc.get(id_field)
                if isinstance(current, str) and index.rewrite(current) != current:
                    delta[id_field] = index.rewrite(current)
            if delta:
                ops.append(
                    UpdateOp(
                        collection=self.collection,
                        doc_id=doc.id,
                        delta=delta,
                        reason=OpReason.CHANGED_FIELDS,
                        natural_key=doc.get(self.spec.natural_key),
                    )
                )
        return ops
