"""Content collaborator: the posts and comments that reports point at.

Post/comment authoring lives elsewhere; the moderation engine only needs to
read authorship, bump the denormalized report counter and mark items
removed.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from workvoice.moderation.errors import NotFound
from workvoice.moderation.models import ContentType, to_iso, utcnow
from workvoice.moderation.storage import JsonCollection

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 200


@dataclass
class Content:
    id: str
    content_type: ContentType
    company_id: str
    author_id: str
    is_anonymous: bool = False
    title: str = ""
    text: str = ""
    report_count: int = 0
    is_removed: bool = False
    removed_at: str = ""
    removed_by: str = ""
    removal_reason: str = ""

    def __post_init__(self) -> None:
        self.content_type = ContentType(self.content_type)

    @property
    def preview(self) -> str:
        if self.content_type is ContentType.post and self.title:
            return self.title
        return self.text[:_PREVIEW_CHARS]


@dataclass
class ContentAuthor:
    id: str
    is_anonymous: bool


class ContentStore:
    """File-based storage for posts and comments.

    Storage path: ``<data_dir>/content/`` with ``posts.json`` and
    ``comments.json``.
    """

    def __init__(self, base_dir: str | Path, *, lock_timeout: float = 5.0) -> None:
        base = Path(base_dir)
        self._collections = {
            ContentType.post: JsonCollection(base / "posts.json", lock_timeout=lock_timeout),
            ContentType.comment: JsonCollection(base / "comments.json", lock_timeout=lock_timeout),
        }

    def _collection(self, content_type: ContentType | str) -> JsonCollection:
        return self._collections[ContentType(content_type)]

    @staticmethod
    def _from_dict(d: dict) -> Content:
        return Content(**{k: v for k, v in d.items() if k in Content.__dataclass_fields__})

    def add(self, content: Content) -> Content:
        self._collection(content.content_type).append(asdict(content))
        return content

    def get(self, content_type: ContentType | str, content_id: str) -> Optional[Content]:
        d = self._collection(content_type).get(content_id)
        return self._from_dict(d) if d else None

    def get_author(self, content_type: ContentType | str, content_id: str) -> ContentAuthor:
        content = self.get(content_type, content_id)
        if content is None:
            raise NotFound(str(ContentType(content_type).value), content_id)
        return ContentAuthor(id=content.author_id, is_anonymous=content.is_anonymous)

    def increment_report_count(self, content_type: ContentType | str, content_id: str) -> int:
        with self._collection(content_type).transaction() as rows:
            for row in rows:
                if row.get("id") == content_id:
                    row["report_count"] = int(row.get("report_count", 0)) + 1
                    return row["report_count"]
        raise NotFound(str(ContentType(content_type).value), content_id)

    def mark_removed(
        self,
        content_type: ContentType | str,
        content_id: str,
        *,
        reason: str,
        actor_id: str,
    ) -> Content:
        """Hide the item. Removing an already-removed item keeps the first removal."""
        with self._collection(content_type).transaction() as rows:
            for row in rows:
                if row.get("id") != content_id:
                    continue
                if row.get("is_removed"):
                    logger.info("%s %s already removed; keeping original removal", content_type, content_id)
                else:
                    row.update(
                        is_removed=True,
                        removed_at=to_iso(utcnow()),
                        removed_by=actor_id,
                        removal_reason=reason,
                    )
                return self._from_dict(row)
        raise NotFound(str(ContentType(content_type).value), content_id)
