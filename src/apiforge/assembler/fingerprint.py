"""Fingerprints of query shapes, used as keys for materialised sort orders."""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy import Select

    from ..filtering.clauses import FilterClause


def query_fingerprint(
    stmt: Select[Any],
    sort_field: str,
    direction: str,
    virtual_clauses: Sequence[FilterClause] = (),
) -> str:
    """Hash the compiled statement, its parameters and the sort request."""
    compiled = stmt.compile()
    payload = json.dumps(
        {
            "sql": str(compiled),
            "params": compiled.params,
            "sort": [sort_field, direction],
            "virtual": [c.to_dict() for c in virtual_clauses],
        },
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
