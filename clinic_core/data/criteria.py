# =============================================================================
# clinic_core/data/criteria.py
# Search criteria shared by the remote and file tiers
# =============================================================================
"""
A search is an AND of exact-equality filters plus an optional free-text term
matched case-insensitively as a substring of any of the search fields. The
remote tier turns this into ``eq`` / ``ilike`` PostgREST filters; the file tier
evaluates ``SearchCriteria.matches`` over the loaded table.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple


def _as_text(value: Any) -> Optional[str]:
    """Render a cell the way PostgREST compares it: as text."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class SearchCriteria:
    """
    Filter for ``search`` operations.

    Attributes:
        term: Free text matched case-insensitively as a substring; blank means "any"
        fields: Fields the term is matched against (OR-ed)
        equals: Exact equality filters (AND-ed)
    """
    term: Optional[str] = None
    fields: Tuple[str, ...] = ()
    equals: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def text(cls, term: Optional[str], fields: Sequence[str] = ()) -> SearchCriteria:
        return cls(term=term, fields=tuple(fields))

    @classmethod
    def where(cls, **equals: Any) -> SearchCriteria:
        return cls(equals=dict(equals))

    @property
    def normalized_term(self) -> Optional[str]:
        """The stripped term, or None when there is nothing to match."""
        if self.term is None:
            return None
        stripped = str(self.term).strip()
        return stripped or None

    def with_default_fields(self, fields: Sequence[str]) -> SearchCriteria:
        """Fill in the entity's search fields when the caller gave none."""
        if self.fields:
            return self
        return replace(self, fields=tuple(fields))

    def equality_filters(self) -> Dict[str, Optional[str]]:
        """Filter values as text; None asks for records without the field (``is.null``)."""
        return {name: _as_text(value) for name, value in self.equals.items()}

    def matches(self, record: Mapping[str, Any]) -> bool:
        """Evaluate the criteria against one record (file-tier semantics)."""
        for name, expected in self.equality_filters().items():
            if _as_text(record.get(name)) != expected:
                return False

        term = self.normalized_term
        if term is None:
            return True

        needle = term.lower()
        for name in self.fields:
            value = _as_text(record.get(name))
            if value is not None and needle in value.lower():
                return True
        return False
