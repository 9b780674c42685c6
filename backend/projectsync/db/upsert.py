"""
Dialect-aware ``INSERT ... ON CONFLICT DO UPDATE``.

Both PostgreSQL and SQLite implement the same conflict clause, which keeps
repeated deliveries of the same row idempotent on the natural key.
"""
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def upsert_rows(
    db: Session,
    model,
    rows: List[dict],
    conflict_columns: Sequence[str],
    update_columns: Iterable[str],
    extra_set: Optional[Dict] = None,
) -> int:
    """
    Insert ``rows`` into ``model``'s table, updating on key conflict.

    Rows sharing a conflict key are collapsed (last one wins) because a
    single statement may not touch the same row twice.

    Returns:
        Number of distinct rows written
    """
    if not rows:
        return 0

    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        raise NotImplementedError(f"Upsert is not supported on {dialect}")

    unique: Dict[tuple, dict] = {}
    for row in rows:
        unique[tuple(row[col] for col in conflict_columns)] = row
    values = list(unique.values())

    stmt = insert(model.__table__).values(values)
    set_ = {col: stmt.excluded[col] for col in update_columns}
    if extra_set:
        set_.update(extra_set)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_=set_,
    )
    db.execute(stmt)
    return len(values)
