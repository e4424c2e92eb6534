from typing import List

# Queries use ? placeholders; the PostgreSQL backend converts them.
# Literal percent signs are avoided so the same text works with psycopg2.

RECIPE_FIELDS = """
    r.id, r.owner_id, r.title, r.description, r.instructions, r.image_url,
    r.is_favorite, r.created_at, r.updated_at
"""

insert_recipe_sql = """
    INSERT INTO recipes (owner_id, title, description, instructions, image_url,
                         is_favorite, title_key, description_key,
                         created_at, updated_at)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

get_recipe_by_id_sql = f"SELECT {RECIPE_FIELDS} FROM recipes r WHERE r.id = ?"

delete_recipe_sql = "DELETE FROM recipes WHERE id = ?"

set_favorite_sql = "UPDATE recipes SET is_favorite = ?, updated_at = ? WHERE id = ?"

upsert_profile_sql = """
    INSERT INTO profiles (id, email, full_name, avatar_url, is_verified, updated_at)
    VALUES (?, ?, ?, ?, ?, ?)
    ON CONFLICT (id) DO UPDATE SET
        email = excluded.email,
        full_name = excluded.full_name,
        avatar_url = excluded.avatar_url,
        is_verified = excluded.is_verified,
        updated_at = excluded.updated_at
"""

get_profile_sql = """
    SELECT id, email, full_name, avatar_url, is_verified, updated_at
    FROM profiles WHERE id = ?
"""

# Tags
insert_tag_if_absent_sql = """
    INSERT INTO tags (name, name_key, created_at) VALUES (?, ?, ?)
    ON CONFLICT (name_key) DO NOTHING
"""

get_tag_by_key_sql = "SELECT id, name, created_at FROM tags WHERE name_key = ?"

get_tag_by_id_sql = "SELECT id, name, created_at FROM tags WHERE id = ?"

list_tags_with_usage_sql = """
    SELECT t.id, t.name, t.created_at, COUNT(rt.recipe_id) AS usage_count
    FROM tags t
    LEFT JOIN recipe_tags rt ON rt.tag_id = t.id
    GROUP BY t.id, t.name, t.created_at
    ORDER BY LOWER(t.name), t.id
"""

search_tags_sql = """
    SELECT id, name, created_at FROM tags
    WHERE SUBSTR(name_key, 1, ?) = ?
    ORDER BY name_key, id
    LIMIT ?
"""

delete_tag_sql = "DELETE FROM tags WHERE id = ?"

insert_recipe_tag_sql = """
    INSERT INTO recipe_tags (recipe_id, tag_id, created_at) VALUES (?, ?, ?)
    ON CONFLICT (recipe_id, tag_id) DO NOTHING
"""

delete_recipe_tag_sql = "DELETE FROM recipe_tags WHERE recipe_id = ? AND tag_id = ?"

get_recipe_tags_sql = """
    SELECT t.id, t.name, t.created_at
    FROM recipe_tags rt
    JOIN tags t ON t.id = rt.tag_id
    WHERE rt.recipe_id = ?
    ORDER BY LOWER(t.name), t.id
"""

# Share grants
GRANT_FIELDS = "id, recipe_id, granted_by, grantee_email, is_public, created_at"

insert_grant_sql = """
    INSERT INTO share_grants (recipe_id, granted_by, grantee_email, is_public, created_at)
    VALUES (?, ?, ?, ?, ?)
"""

get_grant_by_id_sql = f"SELECT {GRANT_FIELDS} FROM share_grants WHERE id = ?"

get_grants_for_recipe_sql = f"""
    SELECT {GRANT_FIELDS} FROM share_grants WHERE recipe_id = ? ORDER BY id
"""

find_email_grant_sql = f"""
    SELECT {GRANT_FIELDS} FROM share_grants WHERE recipe_id = ? AND grantee_email = ?
"""

find_public_grant_sql = f"""
    SELECT {GRANT_FIELDS} FROM share_grants WHERE recipe_id = ? AND is_public = ?
"""

delete_grant_sql = "DELETE FROM share_grants WHERE id = ?"

# Source state for the shared recipe projection
source_recipes_sql = f"SELECT {RECIPE_FIELDS} FROM recipes r ORDER BY r.id"
source_grants_sql = f"SELECT {GRANT_FIELDS} FROM share_grants ORDER BY id"
source_links_sql = "SELECT recipe_id, tag_id, created_at FROM recipe_tags ORDER BY recipe_id, tag_id"
source_tags_sql = "SELECT id, name, created_at FROM tags ORDER BY id"
source_profiles_sql = """
    SELECT id, email, full_name, avatar_url, is_verified, updated_at FROM profiles ORDER BY id
"""


def build_in_clause(column: str, count: int) -> str:
    """Build a ``column IN (?, ?, ...)`` fragment for count values"""
    placeholders = ", ".join("?" for _ in range(count))
    return f"{column} IN ({placeholders})"


def grants_for_recipes_sql(count: int) -> str:
    return f"""
        SELECT {GRANT_FIELDS} FROM share_grants
        WHERE {build_in_clause('recipe_id', count)}
        ORDER BY recipe_id, id
    """


def tags_for_recipes_sql(count: int) -> str:
    return f"""
        SELECT rt.recipe_id, t.id, t.name
        FROM recipe_tags rt
        JOIN tags t ON t.id = rt.tag_id
        WHERE {build_in_clause('rt.recipe_id', count)}
        ORDER BY rt.recipe_id, LOWER(t.name), t.id
    """


def build_owned_recipes_filter(tag_count: int, has_search: bool) -> str:
    """WHERE clause for an owner's recipe list.

    Parameters are bound in order: owner id, tag ids, then the search
    pattern twice (title and description). The pattern must be case-folded
    in Python; it is matched against the stored *_key columns because SQL
    LOWER() only folds ASCII on SQLite.
    """
    conditions: List[str] = ["r.owner_id = ?"]

    if tag_count:
        conditions.append(
            "EXISTS (SELECT 1 FROM recipe_tags rt WHERE rt.recipe_id = r.id "
            f"AND {build_in_clause('rt.tag_id', tag_count)})"
        )

    if has_search:
        conditions.append(
            "(r.title_key LIKE ? ESCAPE '\\' "
            "OR r.description_key LIKE ? ESCAPE '\\')"
        )

    return " AND ".join(conditions)


def build_owned_recipes_query(tag_count: int, has_search: bool) -> str:
    """Paginated owner list: favorites first, newest first, id as tie-break"""
    where = build_owned_recipes_filter(tag_count, has_search)
    return f"""
        SELECT {RECIPE_FIELDS}
        FROM recipes r
        WHERE {where}
        ORDER BY r.is_favorite DESC, r.created_at DESC, r.id DESC
        LIMIT ? OFFSET ?
    """


def build_owned_recipes_count_query(tag_count: int, has_search: bool) -> str:
    where = build_owned_recipes_filter(tag_count, has_search)
    return f"SELECT COUNT(*) AS total_count FROM recipes r WHERE {where}"
