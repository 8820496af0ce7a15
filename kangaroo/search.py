"""
Text search behind the admin /search routes: case-insensitive substring match over a kind's text fields.
"""
from sqlalchemy import or_


def like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search(stmt, text: str | None, columns):
    """Narrow stmt to rows where any of columns contains text. Blank text matches everything."""
    if text is None or not text.strip():
        return stmt
    pattern = like_pattern(text.strip())
    return stmt.where(or_(*[column.ilike(pattern, escape="\\") for column in columns]))
