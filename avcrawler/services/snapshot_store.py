"""
Snapshot Store Service.

Content-addressed store of raw fetched pages. The SHA-256 hash of a page
decides whether it has to be re-ingested:
- Same hash: only ``fetched_at`` is refreshed, ``changed=False``
- New or different hash: payload is written (object store or inline) and
  ``processed_at`` is cleared so the page is re-ingested

Object store paths are ``{source}/{page_key}/{hash}.html`` and written once.
"""

import hashlib
import json
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import storages
from django.db import IntegrityError, transaction
from django.utils import timezone

from avcrawler.models import RawSnapshot

logger = logging.getLogger(__name__)


STORAGE_MODE_INLINE = "inline"
STORAGE_MODE_OBJECT = "storage"

SNAPSHOT_STORAGE_ALIAS = "snapshots"


@dataclass
class SnapshotResult:
    """Outcome of a snapshot upsert."""

    id: uuid.UUID
    is_new: bool
    changed: bool
    was_processed: bool
    storage_path: Optional[str] = None


def calculate_json_hash(data: Any) -> str:
    """SHA-256 of a JSON-serializable record with sorted keys."""
    payload = json.dumps(data, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def should_skip(result: SnapshotResult, force: bool = False) -> bool:
    """Skip ingestion of an unchanged page that was already processed."""
    return not force and not result.changed and result.was_processed


class SnapshotStore:
    """
    Raw page store backing the skip decision.

    Usage:
        store = SnapshotStore()
        result = store.upsert("MGS", "SIRO-5561", url, html)
        if not should_skip(result, force):
            ...
            store.mark_processed(result.id)
    """

    def __init__(self, mode: Optional[str] = None):
        self.mode = mode or getattr(settings, "CRAWLER_SNAPSHOT_STORAGE", STORAGE_MODE_INLINE)

    @staticmethod
    def snapshot_path(source: str, page_key: str, content_hash: str) -> str:
        safe_key = re.sub(r"[^A-Za-z0-9._-]", "_", page_key)
        return f"{source.lower()}/{safe_key}/{content_hash}.html"

    def _store_payload(
        self, source: str, page_key: str, content_hash: str, html: str
    ) -> Tuple[Optional[str], Optional[str]]:
        """
        Write the payload.

        Returns:
            (inline_html, storage_path); exactly one is set
        """
        if self.mode != STORAGE_MODE_OBJECT:
            return html, None

        path = self.snapshot_path(source, page_key, content_hash)
        try:
            storage = storages[SNAPSHOT_STORAGE_ALIAS]
            if not storage.exists(path):
                path = storage.save(path, ContentFile(html.encode("utf-8")))
        except Exception as e:
            logger.warning(f"Snapshot upload failed for {source}:{page_key}, storing inline: {e}")
            return html, None
        return None, path

    def upsert(self, source: str, page_key: str, url: str, html: str) -> SnapshotResult:
        """
        Record a fetched page.

        Args:
            source: Source name
            page_key: Source-local page id
            url: Fetched URL
            html: Raw page content

        Returns:
            SnapshotResult describing whether the content changed
        """
        content_hash = RawSnapshot.compute_content_hash(html)
        now = timezone.now()

        existing = RawSnapshot.objects.filter(source=source, page_key=page_key).first()

        if existing is not None and existing.content_hash == content_hash:
            RawSnapshot.objects.filter(pk=existing.pk).update(fetched_at=now)
            logger.debug(f"Snapshot unchanged: {source}:{page_key}")
            return SnapshotResult(
                id=existing.id,
                is_new=False,
                changed=False,
                was_processed=existing.is_processed,
                storage_path=existing.storage_path,
            )

        html_content, storage_path = self._store_payload(source, page_key, content_hash, html)

        if existing is None:
            try:
                with transaction.atomic():
                    snapshot = RawSnapshot.objects.create(
                        source=source,
                        page_key=page_key,
                        url=url,
                        content_hash=content_hash,
                        html_content=html_content,
                        storage_path=storage_path,
                        fetched_at=now,
                    )
                logger.debug(f"Snapshot created: {source}:{page_key}")
                return SnapshotResult(
                    id=snapshot.id,
                    is_new=True,
                    changed=True,
                    was_processed=False,
                    storage_path=storage_path,
                )
            except IntegrityError:
                # Inserted by a concurrent run between the lookup and the insert
                existing = RawSnapshot.objects.get(source=source, page_key=page_key)

        was_processed = existing.is_processed
        existing.url = url
        existing.content_hash = content_hash
        existing.html_content = html_content
        existing.storage_path = storage_path
        existing.fetched_at = now
        existing.processed_at = None
        existing.save(
            update_fields=[
                "url",
                "content_hash",
                "html_content",
                "storage_path",
                "fetched_at",
                "processed_at",
            ]
        )
        logger.info(f"Snapshot changed: {source}:{page_key}")
        return SnapshotResult(
            id=existing.id,
            is_new=False,
            changed=True,
            was_processed=was_processed,
            storage_path=storage_path,
        )

    def mark_processed(self, snapshot_id: uuid.UUID) -> None:
        RawSnapshot.objects.filter(pk=snapshot_id).update(processed_at=timezone.now())

    def load_content(self, snapshot: RawSnapshot) -> Optional[str]:
        """Raw HTML of a snapshot from inline content or the object store."""
        if snapshot.html_content is not None:
            return snapshot.html_content
        if not snapshot.storage_path:
            return None
        storage = storages[SNAPSHOT_STORAGE_ALIAS]
        with storage.open(snapshot.storage_path, "rb") as f:
            return f.read().decode("utf-8")
