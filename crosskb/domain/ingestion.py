# ============================================================
# Module : crosskb/domain/ingestion.py
# Objet  : Ingestion versionnée et détection de changements.
# Invariants :
#  - Contenu inchangé (même hash) -> aucune version, aucun appel d'embedding.
#  - Contenu modifié -> exactement une nouvelle version et un ChangeRecord.
#  - Échec d'embedding -> la version active précédente reste en place.
#  - Les versions précédentes sont désactivées, jamais supprimées.
# ============================================================
"""Pipeline d'ingestion.

Premier passage: découpage, embedding puis stockage en version 1. Re-fetch: le hash SHA-256 du
texte normalisé est comparé à celui de la version active; seul un changement déclenche un
nouveau découpage, un nouvel embedding et un enregistrement de changement.

Le pourcentage de changement est calculé sur un diff de mots (`difflib.SequenceMatcher`):
`100 * (ajoutés + retirés) / (mots_avant + mots_après)`, arrondi à 2 décimales.
"""

from __future__ import annotations

import difflib
import hashlib
import unicodedata
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import BaseModel, Field

from crosskb.app.metrics import CHANGE_RECORDS_TOTAL, INGEST_OPERATIONS
from crosskb.domain.chunker import TextChunker
from crosskb.domain.errors import (
    IngestionEmbedFailed,
    InvalidOperation,
    PermanentEmbeddingError,
    SourceNotFound,
    TransientEmbeddingError,
)
from crosskb.domain.models import (
    ChangeRecord,
    ChangeType,
    ContentUnit,
    SourceType,
    new_id,
    utcnow,
)
from crosskb.infra.embeddings.gateway import EmbeddingGateway
from crosskb.infra.vecstores.base import ContentStore


class SourceMetadata(BaseModel):
    """Métadonnées d'une source ingérée (document ou page web)."""

    source_id: str = Field(min_length=1)
    title: str | None = None
    source_type: SourceType = SourceType.DOCUMENT
    content_type: str | None = None
    tags: list[str] = Field(default_factory=list)


@dataclass
class IngestResult:
    """Résultat d'une ingestion: unités écrites, changements, ou échec enregistré."""

    source_id: str
    unit_ids: list[str] = field(default_factory=list)
    change_records: list[ChangeRecord] = field(default_factory=list)
    version: int | None = None
    skipped: bool = False
    failure: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def as_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "unit_ids": list(self.unit_ids),
            "change_records": [r.as_dict() for r in self.change_records],
            "version": self.version,
            "skipped": self.skipped,
            "failure": self.failure,
        }


def normalize_text(text: str) -> str:
    """Normalisation avant hash: NFC, fins de ligne, espaces de fin de ligne."""
    text = unicodedata.normalize("NFC", text or "")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return "\n".join(line.rstrip() for line in text.split("\n")).strip()


def content_hash(text: str) -> str:
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def word_diff(old: str, new: str) -> tuple[int, int]:
    """Nombre de mots ajoutés et retirés entre deux textes."""
    a, b = old.split(), new.split()
    added = removed = 0
    matcher = difflib.SequenceMatcher(None, a, b, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ("replace", "delete"):
            removed += i2 - i1
        if tag in ("replace", "insert"):
            added += j2 - j1
    return added, removed


def change_percentage(old: str, new: str) -> float:
    """Pourcentage de mots modifiés, 0.0 (identiques) à 100.0 (aucun mot commun)."""
    total = len(old.split()) + len(new.split())
    if total == 0:
        return 0.0
    added, removed = word_diff(old, new)
    return round(100.0 * (added + removed) / total, 2)


def _labels_changed(head: ContentUnit, metadata: SourceMetadata) -> bool:
    """Tags ou type de contenu différents de la version active (`content_type=None`: inchangé)."""
    if list(metadata.tags) != list(head.tags):
        return True
    return metadata.content_type is not None and metadata.content_type != head.content_type


def _metadata_summary(
    head: ContentUnit, title: str | None, tags: list[str], content_type: str | None
) -> str:
    parts = []
    if title != head.title:
        parts.append(f"title: {head.title!r} -> {title!r}")
    if tags != list(head.tags):
        parts.append(f"tags: {list(head.tags)} -> {tags}")
    if content_type != head.content_type:
        parts.append(f"content_type: {head.content_type!r} -> {content_type!r}")
    return "; ".join(parts)


class IngestionPipeline:
    """Découpe, embed et versionne le contenu d'un tenant."""

    def __init__(
        self,
        store: ContentStore,
        gateway: EmbeddingGateway,
        chunker: TextChunker | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.chunker = chunker or TextChunker()
        self._log = structlog.get_logger(__name__).bind(component="ingestion")

    def _record(self, record: ChangeRecord) -> ChangeRecord:
        self.store.append_change_record(record)
        CHANGE_RECORDS_TOTAL.labels(change_type=record.change_type.value).inc()
        return record

    def _next_version(self, tenant_id: str, source_id: str) -> int:
        versions = self.store.list_versions(tenant_id, source_id)
        return (max(versions) if versions else 0) + 1

    async def ingest(
        self, tenant_id: str, raw_text: str, metadata: SourceMetadata
    ) -> IngestResult:
        """Ingère (ou ré-ingère) le texte d'une source.

        Un texte vide sur une source existante est traité comme un retrait.
        """
        log = self._log.bind(tenant=tenant_id, source_id=metadata.source_id)
        source_id = metadata.source_id
        current = self.store.get_active_units(tenant_id, source_id)
        new_hash = content_hash(raw_text)

        if not normalize_text(raw_text):
            if current:
                return self.retire(tenant_id, source_id)
            INGEST_OPERATIONS.labels(outcome="empty").inc()
            log.info("ingest_skipped_empty")
            return IngestResult(source_id=source_id, skipped=True)

        if not current:
            return await self._write_version(
                tenant_id,
                raw_text,
                metadata,
                new_hash,
                change_type=ChangeType.CREATED,
                previous=None,
                log=log,
            )

        head = current[0]
        text_changed = head.content_hash != new_hash
        title_changed = metadata.title is not None and metadata.title != head.title
        labels_changed = _labels_changed(head, metadata)
        if not text_changed and not title_changed and not labels_changed:
            INGEST_OPERATIONS.labels(outcome="unchanged").inc()
            log.debug("ingest_unchanged", version=head.version)
            return IngestResult(
                source_id=source_id,
                unit_ids=[u.id for u in current],
                version=head.version,
                skipped=True,
            )
        if not text_changed:
            return self._relabel(tenant_id, current, metadata, log, title_changed, labels_changed)
        return await self._write_version(
            tenant_id,
            raw_text,
            metadata,
            new_hash,
            change_type=ChangeType.UPDATED if title_changed else ChangeType.CONTENT_CHANGED,
            previous=current,
            log=log,
        )

    async def refresh(
        self, tenant_id: str, source_id: str, raw_text: str, title: str | None = None
    ) -> IngestResult:
        """Chemin de re-fetch: reprend les métadonnées de la version active si elle existe."""
        current = self.store.get_active_units(tenant_id, source_id)
        if current:
            head = current[0]
            metadata = SourceMetadata(
                source_id=source_id,
                title=title if title is not None else head.title,
                source_type=head.source_type,
                content_type=head.content_type,
                tags=list(head.tags),
            )
        else:
            metadata = SourceMetadata(
                source_id=source_id, title=title, source_type=SourceType.WEB_PAGE
            )
        return await self.ingest(tenant_id, raw_text, metadata)

    async def _write_version(
        self,
        tenant_id: str,
        raw_text: str,
        metadata: SourceMetadata,
        new_hash: str,
        *,
        change_type: ChangeType,
        previous: list[ContentUnit] | None,
        log,
    ) -> IngestResult:
        source_id = metadata.source_id
        chunks = list(self.chunker.chunks(raw_text))
        try:
            vectors = await self.gateway.embed([c.text for c in chunks])
        except (TransientEmbeddingError, PermanentEmbeddingError) as exc:
            failure = IngestionEmbedFailed(
                "embedding failed during ingestion",
                {"source_id": source_id, "cause": exc.code},
            )
            INGEST_OPERATIONS.labels(outcome="embed_failed").inc()
            log.warning("ingest_embed_failed", cause=exc.code, chunks=len(chunks))
            return IngestResult(
                source_id=source_id,
                failure={
                    "code": failure.code,
                    "message": failure.message,
                    "retryable": exc.retryable,
                    "details": failure.details,
                },
            )

        version = self._next_version(tenant_id, source_id)
        now = utcnow()
        units = [
            ContentUnit(
                tenant_id=tenant_id,
                source_id=source_id,
                chunk_index=c.index,
                text=c.text,
                title=metadata.title,
                source_type=metadata.source_type,
                content_type=metadata.content_type,
                tags=list(metadata.tags),
                embedding=vector,
                version=version,
                content_hash=new_hash,
                created_at=now,
                updated_at=now,
            )
            for c, vector in zip(chunks, vectors, strict=True)
        ]
        self.store.replace_active_version(tenant_id, source_id, units)

        if previous:
            old_text = "".join(u.text for u in previous)
            added, removed = word_diff(old_text, raw_text)
            record = ChangeRecord(
                tenant_id=tenant_id,
                source_id=source_id,
                change_type=change_type,
                old_version=previous[0].version,
                new_version=version,
                old_content_hash=previous[0].content_hash,
                new_content_hash=new_hash,
                change_percentage=change_percentage(old_text, raw_text),
                change_summary=f"+{added} words, -{removed} words",
            )
        else:
            record = ChangeRecord(
                tenant_id=tenant_id,
                source_id=source_id,
                change_type=change_type,
                new_version=version,
                new_content_hash=new_hash,
                change_percentage=100.0,
                change_summary=f"{len(chunks)} chunks",
            )
        self._record(record)
        INGEST_OPERATIONS.labels(outcome=change_type.value).inc()
        log.info(
            "ingest_version_written",
            version=version,
            chunks=len(units),
            change_type=change_type.value,
            change_percentage=record.change_percentage,
        )
        return IngestResult(
            source_id=source_id,
            unit_ids=[u.id for u in units],
            change_records=[record],
            version=version,
        )

    def _relabel(
        self,
        tenant_id: str,
        current: list[ContentUnit],
        metadata: SourceMetadata,
        log,
        title_changed: bool,
        labels_changed: bool,
    ) -> IngestResult:
        """Nouvelle version aux métadonnées à jour; les vecteurs existants sont réutilisés.

        Titre seul: `title_changed`. Tags ou type de contenu (lus par les filtres de lien):
        `updated`, puisqu'il n'existe pas de type dédié aux métadonnées.
        """
        head = current[0]
        source_id = head.source_id
        version = self._next_version(tenant_id, source_id)
        now = utcnow()
        title = metadata.title if title_changed else head.title
        content_type = metadata.content_type or head.content_type
        change_type = ChangeType.UPDATED if labels_changed else ChangeType.TITLE_CHANGED
        units = [
            u.model_copy(
                update={
                    "id": new_id(),
                    "title": title,
                    "tags": list(metadata.tags),
                    "content_type": content_type,
                    "version": version,
                    "created_at": now,
                    "updated_at": now,
                }
            )
            for u in current
        ]
        self.store.replace_active_version(tenant_id, source_id, units)
        record = self._record(
            ChangeRecord(
                tenant_id=tenant_id,
                source_id=source_id,
                change_type=change_type,
                old_version=head.version,
                new_version=version,
                old_content_hash=head.content_hash,
                new_content_hash=head.content_hash,
                change_percentage=0.0,
                change_summary=_metadata_summary(head, title, list(metadata.tags), content_type),
            )
        )
        INGEST_OPERATIONS.labels(outcome=change_type.value).inc()
        log.info("ingest_metadata_changed", version=version, change_type=change_type.value)
        return IngestResult(
            source_id=source_id,
            unit_ids=[u.id for u in units],
            change_records=[record],
            version=version,
        )

    def retire(self, tenant_id: str, source_id: str) -> IngestResult:
        """Désactive la source (historique conservé) et enregistre un changement `deleted`."""
        current = self.store.get_active_units(tenant_id, source_id)
        if not current:
            raise SourceNotFound(
                f"no active version for source {source_id}", {"source_id": source_id}
            )
        head = current[0]
        self.store.deactivate_source(tenant_id, source_id)
        record = self._record(
            ChangeRecord(
                tenant_id=tenant_id,
                source_id=source_id,
                change_type=ChangeType.DELETED,
                old_version=head.version,
                new_version=None,
                old_content_hash=head.content_hash,
                change_percentage=100.0,
                change_summary=f"{len(current)} chunks retired",
            )
        )
        INGEST_OPERATIONS.labels(outcome="retired").inc()
        self._log.info("ingest_retired", tenant=tenant_id, source_id=source_id)
        return IngestResult(source_id=source_id, change_records=[record])

    def revert(self, tenant_id: str, source_id: str, version: int) -> IngestResult:
        """Réactive une version conservée; ses vecteurs correspondent déjà à son texte."""
        target = self.store.list_units(tenant_id, source_id, version)
        if not target:
            raise SourceNotFound(
                f"version {version} not found for source {source_id}",
                {"source_id": source_id, "version": version},
            )
        current = self.store.get_active_units(tenant_id, source_id)
        if current and current[0].version == version:
            raise InvalidOperation(
                "version is already active", {"source_id": source_id, "version": version}
            )
        self.store.activate_version(tenant_id, source_id, version)

        head = target[0]
        new_text = "".join(u.text for u in target)
        if current:
            old = current[0]
            old_text = "".join(u.text for u in current)
            text_changed = old.content_hash != head.content_hash
            title_changed = old.title != head.title
            labels_changed = old.tags != head.tags or old.content_type != head.content_type
            if text_changed and (title_changed or labels_changed):
                change_type = ChangeType.UPDATED
            elif text_changed:
                change_type = ChangeType.CONTENT_CHANGED
            elif labels_changed:
                change_type = ChangeType.UPDATED
            else:
                change_type = ChangeType.TITLE_CHANGED
            added, removed = word_diff(old_text, new_text)
            record = ChangeRecord(
                tenant_id=tenant_id,
                source_id=source_id,
                change_type=change_type,
                old_version=old.version,
                new_version=version,
                old_content_hash=old.content_hash,
                new_content_hash=head.content_hash,
                change_percentage=change_percentage(old_text, new_text),
                change_summary=f"reverted to v{version}: +{added} words, -{removed} words",
            )
        else:
            record = ChangeRecord(
                tenant_id=tenant_id,
                source_id=source_id,
                change_type=ChangeType.CREATED,
                new_version=version,
                new_content_hash=head.content_hash,
                change_percentage=100.0,
                change_summary=f"restored v{version}",
            )
        self._record(record)
        INGEST_OPERATIONS.labels(outcome="reverted").inc()
        self._log.info("ingest_reverted", tenant=tenant_id, source_id=source_id, version=version)
        return IngestResult(
            source_id=source_id,
            unit_ids=[u.id for u in target],
            change_records=[record],
            version=version,
        )
