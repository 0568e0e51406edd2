# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import copy
from datetime import date
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from clinic_core.config import AppSettings


# =============================================================================
# IN-MEMORY SUPABASE STAND-IN
# =============================================================================

def _text(value):
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _ilike(value, pattern):
    """Only the %term% patterns the store sends are supported."""
    if value is None:
        return False
    return pattern.strip("%").lower() in _text(value).lower()


def _split_logic_tree(expression):
    """Split ``a.ilike."x,y",b.ilike.z`` on the commas outside double quotes."""
    parts, current, quoted, escaped = [], "", False, False
    for char in expression:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            quoted = not quoted
        elif char == "," and not quoted:
            parts.append(current)
            current = ""
            continue
        current += char
    parts.append(current)
    return parts


def _read_token(text):
    """Read one column or value, unquoting it; returns (token, remainder)."""
    if not text.startswith('"'):
        column, dot, rest = text.partition(".")
        return column, dot + rest
    token, index = "", 1
    while text[index] != '"':
        if text[index] == "\\":
            index += 1
        token += text[index]
        index += 1
    return token, text[index + 1:]


def _sort_key(value):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    return (1, 0, "" if value is None else str(value))


class FakeQuery:
    """Records a PostgREST-style query chain and evaluates it on execute()."""

    def __init__(self, client, table_name):
        self.client = client
        self.table_name = table_name
        self.action = "select"
        self.columns = "*"
        self.count_mode = None
        self.head = False
        self.payload = None
        self.filters = []
        self.order_by = None
        self.desc = False
        self.start = None
        self.end = None
        self.limit_n = None

    # Builders
    def select(self, columns="*", count=None, head=False):
        self.action = "select"
        self.columns = columns
        self.count_mode = count
        self.head = head
        return self

    def insert(self, record):
        self.action = "insert"
        self.payload = dict(record)
        return self

    def update(self, fields):
        self.action = "update"
        self.payload = dict(fields)
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: _text(row.get(column)) == _text(value))
        return self

    def ilike(self, column, pattern):
        self.filters.append(lambda row: _ilike(row.get(column), pattern))
        return self

    def is_(self, column, value):
        assert value == "null"
        self.filters.append(lambda row: row.get(column) is None)
        return self

    def or_(self, expression):
        clauses = []
        for part in _split_logic_tree(expression):
            column, rest = _read_token(part)
            assert rest.startswith(".ilike."), part
            pattern, _ = _read_token(rest[len(".ilike."):])
            clauses.append((column, pattern))
        self.filters.append(
            lambda row: any(_ilike(row.get(column), pattern) for column, pattern in clauses)
        )
        return self

    def order(self, column, desc=False):
        self.order_by = column
        self.desc = desc
        return self

    def range(self, start, end):
        self.start = start
        self.end = end
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    # Evaluation
    def _matching(self, rows):
        return [row for row in rows if all(check(row) for check in self.filters)]

    def execute(self):
        self.client.calls.append((self.table_name, self.action))
        if self.client.fail:
            raise ConnectionError("Supabase is unreachable")

        rows = self.client.tables.setdefault(self.table_name, [])

        if self.action == "insert":
            rows.append(copy.deepcopy(self.payload))
            return SimpleNamespace(data=[copy.deepcopy(self.payload)], count=None)

        matched = self._matching(rows)

        if self.action == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return SimpleNamespace(data=copy.deepcopy(matched), count=None)

        if self.action == "delete":
            self.client.tables[self.table_name] = [row for row in rows if row not in matched]
            return SimpleNamespace(data=copy.deepcopy(matched), count=None)

        total = len(matched) if self.count_mode else None
        if self.head:
            return SimpleNamespace(data=[], count=total)
        if self.order_by:
            matched = sorted(
                matched, key=lambda row: _sort_key(row.get(self.order_by)), reverse=self.desc
            )
        if self.start is not None:
            matched = matched[self.start:self.end + 1]
        if self.limit_n is not None:
            matched = matched[:self.limit_n]
        if self.columns != "*":
            names = [name.strip() for name in self.columns.split(",")]
            matched = [{name: row.get(name) for name in names} for row in matched]
        return SimpleNamespace(data=copy.deepcopy(matched), count=total)


class FakeSupabaseClient:
    """
    Minimal stand-in for ``supabase.Client``.

    Tables are plain lists of dicts; set ``fail = True`` to make every call
    raise as an unreachable backend would.
    """

    def __init__(self, tables=None, fail=False):
        self.tables = {name: [dict(row) for row in rows] for name, rows in (tables or {}).items()}
        self.fail = fail
        self.calls = []

    def table(self, name):
        return FakeQuery(self, name)


# =============================================================================
# SETTINGS / CLIENT FIXTURES
# =============================================================================

@pytest.fixture
def settings(tmp_path):
    """File-only settings with every table under a temporary directory"""
    return AppSettings(data_dir=tmp_path / "ShehData")


@pytest.fixture
def make_supabase():
    """Factory for in-memory Supabase clients seeded with table rows"""
    return FakeSupabaseClient


@pytest.fixture
def fake_supabase():
    """Reachable in-memory Supabase"""
    return FakeSupabaseClient()


@pytest.fixture
def unreachable_supabase():
    """Supabase client whose every call fails"""
    return FakeSupabaseClient(fail=True)


@pytest.fixture
def fixed_today():
    """Clock pinned to a known date"""
    return lambda: date(2024, 5, 1)


@pytest.fixture
def make_store(settings):
    """Factory building a record store for an entity spec"""
    from clinic_core.offline.record_store import DualTierRecordStore

    def _make(spec, remote_client=None, **kwargs):
        return DualTierRecordStore(
            spec,
            settings.store_config(spec.file_name),
            remote_client=remote_client,
            **kwargs,
        )

    return _make


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit(monkeypatch):
    """Mock Streamlit for testing"""
    import sys

    # Create mock streamlit module
    mock_st = MagicMock()
    mock_st.session_state = {}
    mock_st.cache_data = lambda f: f
    mock_st.cache_resource = lambda f: f

    # Replace the module and the handle already imported by the error handlers
    monkeypatch.setitem(sys.modules, "streamlit", mock_st)
    monkeypatch.setattr("clinic_core.errors.handlers.st", mock_st)

    yield mock_st
