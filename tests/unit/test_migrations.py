"""Unit tests for the packaged schema scripts."""

import pytest

from fulfillment.migrations import get_schema, get_schema_statements

TABLES = ("genres", "catalog_items", "orders", "order_items")


class TestGetSchema:
    @pytest.mark.parametrize("backend", ["postgresql", "sqlite"])
    def test_creates_all_tables(self, backend):
        schema = get_schema(backend)
        for table in TABLES:
            assert f"CREATE TABLE IF NOT EXISTS {table}" in schema

    @pytest.mark.parametrize("backend", ["postgresql", "sqlite"])
    def test_stock_cannot_go_negative(self, backend):
        assert "CHECK (stock_quantity >= 0)" in get_schema(backend)

    @pytest.mark.parametrize("backend", ["postgresql", "sqlite"])
    def test_genres_have_no_soft_delete(self, backend):
        genres = next(
            s for s in get_schema_statements(backend) if "TABLE IF NOT EXISTS genres" in s
        )
        assert "deleted" not in genres

    def test_default_backend_is_postgresql(self):
        assert get_schema() == get_schema("postgresql")
        assert "NUMERIC(12, 2)" in get_schema()

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValueError, match="Unsupported backend"):
            get_schema("oracle")  # type: ignore[arg-type]


class TestGetSchemaStatements:
    @pytest.mark.parametrize("backend", ["postgresql", "sqlite"])
    def test_statements_are_clean(self, backend):
        statements = get_schema_statements(backend)

        assert statements
        for statement in statements:
            assert not statement.endswith(";")
            assert not statement.startswith("--")
            assert statement.split()[0] == "CREATE"

    def test_one_statement_per_object(self):
        # 4 tables + 4 indexes
        assert len(get_schema_statements("postgresql")) == 8
        assert len(get_schema_statements("sqlite")) == 8
