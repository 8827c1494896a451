"""
Reference resolver.
Maps human-readable reference names (e.g. property names) to document ids,
collapsing duplicate referenced documents and creating missing ones.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from ..models.operations import CreateOp, DeleteOp, MutationOp, OpReason, UpdateOp
from ..models.records import StoreDocument, UnresolvedReference
from ..store.base import DocumentStore
from ..utils.exceptions import ReferenceUnresolvable, StoreError

logger = logging.getLogger(__name__)


class AliasTable:
    """Known legacy spellings mapped to one canonical spelling."""

    def __init__(self, aliases: Optional[dict[str, str]] = None):
        self._aliases = {
            variant.strip().casefold(): canonical.strip()
            for variant, canonical in (aliases or {}).items()
        }

    def canonical(self, name: str) -> str:
        """Canonical spelling of a name (the trimmed name when no alias applies)."""
        stripped = name.strip()
        return self._aliases.get(stripped.casefold(), stripped)

    def key(self, name: str) -> str:
        """Lookup key: canonical spelling, case-folded."""
        return self.canonical(name).casefold()


@dataclass
class ReferenceIndex:
    """Canonical reference name -> authoritative document id for one collection."""

    collection: str
    name_field: str
    aliases: AliasTable
    ids_by_key: dict[str, str] = field(default_factory=dict)
    # Duplicate document id -> authoritative id
    redirects: dict[str, str] = field(default_factory=dict)
    unresolved: dict[str, UnresolvedReference] = field(default_factory=dict)

    def lookup(self, name: str) -> Optional[str]:
        return self.ids_by_key.get(self.aliases.key(name))

    def rewrite(self, doc_id: Optional[str]) -> Optional[str]:
        if doc_id is None:
            return None
        return self.redirects.get(doc_id, doc_id)

    def unresolved_for(self, name: str) -> Optional[UnresolvedReference]:
        return self.unresolved.get(self.aliases.key(name))


@dataclass
class ResolutionResult:
    """Index plus the operations needed to make the referenced collection consistent."""

    index: ReferenceIndex
    ops: list[MutationOp] = field(default_factory=list)


class ReferenceResolver:
    """
    Resolves reference names for one referenced collection.

    Single pass: ids for created references are allocated up front and
    registered in the index, so later records in the same run see them.
    """

    def __init__(self, store: DocumentStore, aliases: AliasTable):
        self.store = store
        self.aliases = aliases

    def build_index(
        self, collection: str, name_field: str, documents: list[StoreDocument]
    ) -> ResolutionResult:
        """
        Index existing referenced documents by canonical name.

        The first document per canonical name (store order) is kept; later
        ones are deleted and redirected to it. A kept document stored under
        a legacy spelling is renamed to the canonical spelling.
        """
        index = ReferenceIndex(collection=collection, name_field=name_field, aliases=self.aliases)
        result = ResolutionResult(index=index)

        for doc in documents:
            stored = doc.get(name_field)
            if not isinstance(stored, str) or not stored.strip():
                continue
            key = self.aliases.key(stored)

            authoritative = index.ids_by_key.get(key)
            if authoritative is not None:
                logger.info(
                    f"Duplicate {collection} '{stored}' ({doc.id}) collapses into {authoritative}"
                )
                index.redirects[doc.id] = authoritative
                result.ops.append(
                    DeleteOp(
                        collection=collection,
                        doc_id=doc.id,
                        reason=OpReason.REFERENCE_DUPLICATE,
                        natural_key=stored,
                    )
                )
                continue

            index.ids_by_key[key] = doc.id
            canonical = self.aliases.canonical(stored)
            if canonical != stored:
                result.ops.append(
                    UpdateOp(
                        collection=collection,
                        doc_id=doc.id,
                        delta={name_field: canonical},
                        reason=OpReason.REFERENCE_RENAME,
                        natural_key=canonical,
                    )
                )

        return result

    def resolve(
        self, result: ResolutionResult, names: list[str], create_missing: bool = True
    ) -> None:
        """
        Ensure every name has an id in the index.

        Missing names get exactly one CreateOp each. Names that cannot be
        created are recorded in ``index.unresolved`` and never raise.
        """
        index = result.index
        for name in names:
            key = self.aliases.key(name)
            if not key or key in index.ids_by_key or key in index.unresolved:
                continue
            try:
                op = self._create(index, name, create_missing)
            except ReferenceUnresolvable as e:
                logger.warning(str(e))
                index.unresolved[key] = UnresolvedReference(
                    collection=index.collection, name=name, reason=e.reason
                )
                continue
            index.ids_by_key[key] = op.doc_id
            result.ops.append(op)
            logger.info(f"New {index.collection} '{op.natural_key}' will be created as {op.doc_id}")

    def _create(self, index: ReferenceIndex, name: str, create_missing: bool) -> CreateOp:
        canonical = self.aliases.canonical(name)
        if not create_missing:
            raise ReferenceUnresolvable(
                index.collection, canonical, "no matching document and creation is disabled"
            )
        try:
            doc_id = self.store.new_id(index.collection)
        except StoreError as e:
            raise ReferenceUnresolvable(index.collection, canonical, str(e)) from e
        return CreateOp(
            collection=index.collection,
            doc_id=doc_id,
            data={index.name_field: canonical, "fromExcel": True},
            reason=OpReason.NEW_REFERENCE,
            natural_key=canonical,
        )
