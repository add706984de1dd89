"""Tests for query normalization and placeholder handling."""

import pytest

from prql_query.errors import MalformedSourceSpec
from prql_query.query import (
    DEFAULT_TARGET,
    STD_NAMES,
    Dialect,
    allocate_placeholders,
    has_from_clause,
    normalize_query,
    quote_identifier,
    split_declarations,
    split_header,
    substitute_placeholders,
)
from prql_query.sources import Source, parse_source


SALES = Source(alias="sales", location="data/sales.csv")
ORDERS = Source(alias="orders", location="public.orders")


class TestSplitHeader:
    """Tests for header detection."""

    def test_no_header(self):
        assert split_header("from t\ntake 5") == (None, "from t\ntake 5")

    def test_header(self):
        header, body = split_header("prql target:sql.duckdb\nfrom t")
        assert header == "prql target:sql.duckdb"
        assert body == "from t"

    def test_header_after_comment(self):
        header, body = split_header("# report\n\nprql target:sql.postgres\ntake 1")
        assert header.endswith("prql target:sql.postgres")
        assert body == "take 1"

    def test_prqlish_identifier_is_not_header(self):
        header, _ = split_header("prqlx | take 1")
        assert header is None


class TestHasFromClause:
    """Tests for from-clause detection."""

    def test_leading_from(self):
        assert has_from_clause("from sales\ntake 5")

    def test_indented_from(self):
        assert has_from_clause("  from sales | take 5")

    def test_no_from(self):
        assert not has_from_clause("take 5")
        assert not has_from_clause("select {from_date}")


class TestAllocatePlaceholders:
    """Tests for collision-free token allocation."""

    def test_sequential(self):
        assert allocate_placeholders("take 5", ["a", "b"]) == {
            "a": "__pq_src0__",
            "b": "__pq_src1__",
        }

    def test_skips_tokens_in_text(self):
        tokens = allocate_placeholders("derive {x = '__pq_src0__'}", ["a"])
        assert tokens == {"a": "__pq_src1__"}

    def test_skips_relation_alias_in_alias(self):
        tokens = allocate_placeholders("take 5", ["__pq_rel0__", "b"])
        assert tokens["__pq_rel0__"] == "__pq_src1__"
        assert tokens["b"] == "__pq_src2__"


class TestNormalizeQuery:
    """Tests for PRQL normalization."""

    def test_sql_passthrough(self):
        query = normalize_query("SELECT * FROM sales", [SALES], sql=True)
        assert query.dialect is Dialect.SQL
        assert query.text == "SELECT * FROM sales"
        assert query.relations([SALES]) == {"sales": SALES}

    def test_default_target_header(self):
        query = normalize_query("from sales | take 5", [SALES])
        assert query.text.splitlines()[0] == f"prql target:{DEFAULT_TARGET}"

    def test_backend_target_header(self):
        query = normalize_query("take 5", [SALES], target="sql.duckdb")
        assert query.text.splitlines()[0] == "prql target:sql.duckdb"

    def test_existing_header_kept(self):
        query = normalize_query("prql target:sql.mysql\nfrom sales", [SALES], target="sql.duckdb")
        lines = query.text.splitlines()
        assert lines[0] == "prql target:sql.mysql"
        assert "prql target:sql.duckdb" not in query.text

    def test_bindings_and_implicit_from(self):
        query = normalize_query("take 5", [SALES, ORDERS])
        lines = query.text.splitlines()
        assert lines[1] == "let sales = (from __pq_rel0__ = __pq_src0__)"
        assert lines[2] == "let orders = (from __pq_rel1__ = __pq_src1__)"
        # no from clause: starts from the last source
        assert lines[3] == "from orders"
        assert lines[4] == "take 5"

    def test_explicit_from_not_duplicated(self):
        query = normalize_query("from sales\ntake 5", [SALES, ORDERS])
        assert "from orders" not in query.text.splitlines()

    def test_no_sources(self):
        query = normalize_query("from employees | select {name}", [])
        assert query.text == f"prql target:{DEFAULT_TARGET}\nfrom employees | select {{name}}"
        assert query.placeholders == {}

    def test_odd_alias_is_quoted(self):
        source = Source(alias="my-data", location="my-data.csv")
        query = normalize_query("take 1", [source])
        assert "let `my-data` = " in query.text
        assert "from `my-data`" in query.text

    def test_relations_use_placeholders(self):
        query = normalize_query("take 5", [SALES, ORDERS])
        assert query.relations([SALES, ORDERS]) == {
            "__pq_src0__": SALES,
            "__pq_src1__": ORDERS,
        }


class TestSubstitutePlaceholders:
    """Tests for placeholder substitution."""

    def test_longest_first(self):
        sql = "SELECT * FROM __pq_src1__ JOIN __pq_src10__"
        result = substitute_placeholders(sql, {
            "__pq_src1__": "read_csv_auto('a.csv')",
            "__pq_src10__": "read_parquet('b.parquet')",
        })
        assert result == "SELECT * FROM read_csv_auto('a.csv') JOIN read_parquet('b.parquet')"

    def test_unrelated_text_untouched(self):
        assert substitute_placeholders("SELECT 1", {"__pq_src0__": "x"}) == "SELECT 1"


def test_quote_identifier():
    assert quote_identifier("sales") == "sales"
    assert quote_identifier("2024 sales") == "`2024 sales`"


class TestDeclarations:
    """Tests for leading let declarations and the starting clause."""

    def test_split_declarations(self):
        body = "# sizes\nlet big = 100\nlet top = (\n  from sales\n  take 1\n)\nfilter amount > big"
        declarations, main = split_declarations(body)
        assert declarations.endswith(")")
        assert main == "filter amount > big"

    def test_annotations_are_declarations(self):
        declarations, main = split_declarations("@{binding_strength=1}\nlet f = x -> x + 1\ntake 1")
        assert declarations.startswith("@")
        assert main == "take 1"

    def test_brackets_in_strings_ignored(self):
        declarations, main = split_declarations("let s = ')'\nlet t = 1\ntake 1")
        assert main == "take 1"

    def test_from_after_declarations(self):
        assert has_from_clause("let big = 100\nfrom sales\nfilter amount > big")

    def test_nested_from_is_not_starting_clause(self):
        assert not has_from_clause("derive x = 1\njoin side:left (\n  from sales\n) (==id)")
        assert not has_from_clause("let top = (\n  from sales\n)\ntake 1")

    def test_implicit_from_after_user_declarations(self):
        query = normalize_query("let big = 100\nfilter amount > big", [SALES])
        lines = query.text.splitlines()
        assert lines[1] == "let sales = (from __pq_rel0__ = __pq_src0__)"
        assert lines[2:] == ["let big = 100", "from sales", "filter amount > big"]

    def test_implicit_from_before_nested_join(self):
        body = "derive x = 1\njoin side:left (\n  from orders\n) (==id)"
        query = normalize_query(body, [ORDERS, SALES])
        lines = query.text.splitlines()
        assert lines[3] == "from sales"
        assert "\n".join(lines[4:]) == body

    def test_compiles_with_user_declarations(self):
        from prql_query.compiler import compile_prql

        query = normalize_query("let big = 100\nfilter amount > big", [SALES])
        assert "__pq_src0__" in compile_prql(query.text)


class TestStdNameAliases:
    """Tests for aliases that collide with PRQL standard library names."""

    @pytest.mark.parametrize("location", ["date.csv", "count.csv", "select.csv", "from.csv", "std.csv"])
    def test_rejected(self, location):
        with pytest.raises(MalformedSourceSpec, match="alias=location"):
            normalize_query("take 1", [parse_source(location)])

    def test_explicit_alias_accepted(self):
        query = normalize_query("take 1", [parse_source("d=date.csv")])
        assert "let d = " in query.text

    def test_raw_sql_not_checked(self):
        source = parse_source("date.csv")
        assert normalize_query("SELECT * FROM date", [source], sql=True).relations([source]) == {"date": source}

    def test_names(self):
        assert {"date", "count", "select", "from", "std"} <= STD_NAMES
        assert "sales" not in STD_NAMES
