"""Global, case-insensitive tag catalog."""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from recipeshare.core.exceptions import DatabaseException, ValidationException
from recipeshare.models.entities import EntityKind, Tag

from .db_utils import normalize_tag_name, tag_name_key, utc_now
from .sql_queries import (
    delete_tag_sql,
    get_tag_by_id_sql,
    get_tag_by_key_sql,
    insert_tag_if_absent_sql,
    list_tags_with_usage_sql,
    search_tags_sql,
)

if TYPE_CHECKING:
    from .db_core import Database

logger = logging.getLogger(__name__)

MAX_TAG_NAME_LENGTH = 100


class TagCatalog:
    """Tags are shared by every user and created lazily on first use.

    Names are unique regardless of case: ``Vegan`` and ``vegan`` are the
    same tag, and whichever spelling was stored first is kept for display.
    """

    def __init__(self, db: "Database"):
        self.db = db

    def get_or_create(self, name: str) -> Tag:
        """Return the tag with this name, creating it if it does not exist.

        Concurrent calls with the same name (in any case) end up with one row:
        the insert is skipped on a key conflict and the row is fetched back.
        """
        display_name = normalize_tag_name(name)
        if not display_name:
            raise ValidationException("Tag name cannot be empty")
        if len(display_name) > MAX_TAG_NAME_LENGTH:
            raise ValidationException(
                f"Tag name cannot be longer than {MAX_TAG_NAME_LENGTH} characters"
            )

        key = tag_name_key(display_name)
        with self.db.unit_of_work() as tx:
            result = tx.execute(insert_tag_if_absent_sql, (display_name, key, utc_now()))
            rows = tx.execute(get_tag_by_key_sql, (key,))
            if not rows:
                raise DatabaseException(f"Failed to retrieve tag '{display_name}' after insert")
            tag = Tag(**rows[0])
            if result and result[0].get("rowcount", 0) > 0:
                logger.info(f"Created tag '{tag.name}' ({tag.id})")
        return tag

    def get_by_name(self, name: str) -> Optional[Tag]:
        key = tag_name_key(name or "")
        if not key:
            return None
        rows = self.db.query(get_tag_by_key_sql, (key,))
        return Tag(**rows[0]) if rows else None

    def get_tag(self, tag_id: int) -> Optional[Tag]:
        rows = self.db.query(get_tag_by_id_sql, (tag_id,))
        return Tag(**rows[0]) if rows else None

    def list_tags(self) -> List[Dict[str, Any]]:
        """All tags with the number of recipes carrying each, ordered by name"""
        rows = self.db.query(list_tags_with_usage_sql)
        return [
            {
                "id": row["id"],
                "name": row["name"],
                "created_at": row["created_at"],
                "usage_count": row["usage_count"],
            }
            for row in rows
        ]

    def search_tags(self, prefix: str, limit: int = 20) -> List[Tag]:
        """Tags whose name starts with prefix, case-insensitively"""
        key = tag_name_key(prefix or "")
        if not key:
            return []
        rows = self.db.query(search_tags_sql, (len(key), key, limit))
        return [Tag(**row) for row in rows]

    def delete_tag(self, tag_id: int) -> bool:
        """Delete a tag and every link to it. Returns False if it did not exist."""
        with self.db.unit_of_work() as tx:
            result = tx.execute(delete_tag_sql, (tag_id,))
            deleted = bool(result and result[0].get("rowcount", 0) > 0)
            if deleted:
                self.db.notify(EntityKind.TAG, tag_id)
        if deleted:
            logger.info(f"Deleted tag {tag_id}")
        return deleted
