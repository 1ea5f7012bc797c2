"""
Tests for the SQL guard
=======================
Allow-list checks, FROM rewriting and row limits.
"""

import pytest

from sheet_to_sql_app.errors import RejectedStatement
from sheet_to_sql_app.sql_guard import mask_literals, sanitize, strip_comments, strip_fences


class TestRewrite:
    def test_detail_query_gets_limit(self):
        result = sanitize("SELECT * FROM patients WHERE x=1", "patients")
        assert result.sql == 'SELECT * FROM "patients" WHERE x=1 LIMIT 100'
        assert result.row_limit == 100
        assert not result.is_aggregate

    def test_garbage_table_reference_is_discarded(self):
        result = sanitize("SELECT * FROM garbage..syntax WHERE x=1", "patients")
        assert result.sql == 'SELECT * FROM "patients" WHERE x=1 LIMIT 100'

    def test_aggregate_has_no_limit(self):
        result = sanitize("SELECT COUNT(*) FROM orders", "patients")
        assert result.sql == 'SELECT COUNT(*) FROM "patients"'
        assert result.is_aggregate
        assert result.row_limit is None

    def test_group_by_is_aggregate(self):
        result = sanitize("SELECT city, AVG(age) FROM t GROUP BY city ORDER BY city", "patients")
        assert result.sql == 'SELECT city, AVG(age) FROM "patients" GROUP BY city ORDER BY city'

    def test_hallucinated_table_is_replaced(self):
        result = sanitize("SELECT name FROM patient_records", "patients")
        assert result.sql == 'SELECT name FROM "patients" LIMIT 100'
        assert result.target_table == "patients"

    def test_schema_qualified_table_is_replaced(self):
        result = sanitize("SELECT name FROM main.other", "patients")
        assert result.sql == 'SELECT name FROM "patients" LIMIT 100'

    def test_table_needing_quotes(self):
        result = sanitize("SELECT * FROM x", "t_2024_intake")
        assert result.sql == 'SELECT * FROM "t_2024_intake" LIMIT 100'

    @pytest.mark.parametrize("raw", [
        "SELECT p.age FROM patients p WHERE p.age > 30",
        "SELECT p.age FROM patients AS p WHERE p.age > 30",
    ])
    def test_alias_is_kept(self, raw):
        result = sanitize(raw, "patients")
        assert result.sql == 'SELECT p.age FROM "patients" AS p WHERE p.age > 30 LIMIT 100'

    def test_missing_from_is_inserted(self):
        assert sanitize("SELECT 1", "patients").sql == 'SELECT 1 FROM "patients" LIMIT 100'
        result = sanitize("SELECT name WHERE age > 3", "patients")
        assert result.sql == 'SELECT name FROM "patients" WHERE age > 3 LIMIT 100'

    def test_trailing_semicolon_removed(self):
        assert sanitize("SELECT * FROM patients;", "patients").sql == 'SELECT * FROM "patients" LIMIT 100'

    def test_lowercase_keywords(self):
        result = sanitize("select * from patients where name = 'FROM me'", "patients")
        assert result.sql == "select * FROM \"patients\" where name = 'FROM me' LIMIT 100"


class TestLimits:
    def test_smaller_limit_kept(self):
        result = sanitize("SELECT name FROM patients LIMIT 10", "patients")
        assert result.sql == 'SELECT name FROM "patients" LIMIT 10'
        assert result.row_limit == 10

    def test_oversized_limit_clamped(self):
        result = sanitize("SELECT name FROM patients LIMIT 5000", "patients")
        assert result.sql == 'SELECT name FROM "patients" LIMIT 100'
        assert result.row_limit == 100

    def test_aggregate_limit_untouched(self):
        result = sanitize("SELECT city, COUNT(*) FROM t GROUP BY city LIMIT 500", "patients")
        assert result.sql.endswith("LIMIT 500")
        assert result.row_limit == 500

    def test_custom_cap(self):
        result = sanitize("SELECT * FROM patients", "patients", max_rows=25)
        assert result.sql.endswith("LIMIT 25")

    def test_aggregate_word_in_literal_is_not_aggregate(self):
        result = sanitize("SELECT * FROM patients WHERE note = 'count(x)'", "patients")
        assert not result.is_aggregate
        assert result.sql.endswith("LIMIT 100")


class TestRejections:
    @pytest.mark.parametrize("raw", [
        "DELETE FROM patients",
        "UPDATE patients SET age = 1",
        "DROP TABLE patients",
        "DROP TABLE x",
        "SELECT * FROM a JOIN b",
        "SELECT 1; DELETE FROM x",
        "WITH x AS (SELECT 1) SELECT * FROM x",
        "PRAGMA table_info('patients')",
    ])
    def test_rejected_kinds(self, raw):
        with pytest.raises(RejectedStatement):
            sanitize(raw, "patients")

    def test_join(self):
        with pytest.raises(RejectedStatement) as exc:
            sanitize("SELECT * FROM a JOIN b ON a.id = b.id", "patients")
        assert "JOIN" in exc.value.reason

    def test_multiple_statements(self):
        with pytest.raises(RejectedStatement) as exc:
            sanitize("SELECT 1; DROP TABLE patients", "patients")
        assert exc.value.reason == "multiple statements are not allowed"

    def test_write_keyword_anywhere(self):
        with pytest.raises(RejectedStatement):
            sanitize("SELECT * FROM patients WHERE 1=1 OR DELETE", "patients")

    def test_subquery(self):
        with pytest.raises(RejectedStatement) as exc:
            sanitize("SELECT * FROM (SELECT * FROM patients)", "patients")
        assert exc.value.reason == "subqueries are not supported"

    def test_set_operation(self):
        with pytest.raises(RejectedStatement):
            sanitize("SELECT a FROM t UNION SELECT a FROM u", "patients")

    def test_file_reader(self):
        with pytest.raises(RejectedStatement) as exc:
            sanitize("SELECT * FROM read_csv('/etc/passwd')", "patients")
        assert exc.value.reason == "reading files or other tables is not allowed"

    @pytest.mark.parametrize("raw", ["", None, "   ", "-- nothing here"])
    def test_empty(self, raw):
        with pytest.raises(RejectedStatement) as exc:
            sanitize(raw, "patients")
        assert exc.value.reason == "no SQL statement was generated"

    def test_message_is_user_facing(self):
        with pytest.raises(RejectedStatement) as exc:
            sanitize("DROP TABLE patients", "patients")
        assert exc.value.message.startswith("Cannot answer this question safely")
        assert exc.value.sql == "DROP TABLE patients"


class TestLiteralsAndComments:
    def test_keywords_inside_literals_are_ignored(self):
        result = sanitize("SELECT * FROM patients WHERE note = 'drop table; union'", "patients")
        assert result.sql == "SELECT * FROM \"patients\" WHERE note = 'drop table; union' LIMIT 100"

    def test_comment_hiding_a_write_is_removed(self):
        raw = "SELECT * FROM patients -- DROP TABLE x\nWHERE age > 1"
        assert sanitize(raw, "patients").sql == 'SELECT * FROM "patients" WHERE age > 1 LIMIT 100'

    def test_block_comment_removed(self):
        assert strip_comments("SELECT /* ; DELETE */ 1") == "SELECT   1"

    def test_comment_marker_inside_literal_kept(self):
        assert strip_comments("SELECT '--x' AS a") == "SELECT '--x' AS a"

    def test_mask_keeps_length(self):
        sql = "SELECT 'abc' AS \"x y\""
        masked = mask_literals(sql)
        assert len(masked) == len(sql)
        assert masked == "SELECT '   ' AS \"   \""

    def test_fenced_sql(self):
        assert strip_fences("```sql\nSELECT 1\n```").strip() == "SELECT 1"
        result = sanitize("```sql\nSELECT name FROM x\n```", "patients")
        assert result.sql == 'SELECT name FROM "patients" LIMIT 100'


class TestQuotingTricks:
    def test_dollar_quotes_cannot_hide_statements(self):
        raw = "SELECT $$'$$ AS a FROM patients; DROP TABLE secrets; SELECT '$$'"
        with pytest.raises(RejectedStatement) as exc:
            sanitize(raw, "patients")
        assert exc.value.reason == "dollar-quoted and escape strings are not allowed"

    def test_tagged_dollar_quotes_rejected(self):
        with pytest.raises(RejectedStatement):
            sanitize("SELECT $tag$abc$tag$ AS a FROM patients", "patients")

    def test_escape_strings_rejected(self):
        raw = r"SELECT E'\'' AS a FROM t; DROP TABLE x; SELECT ''"
        with pytest.raises(RejectedStatement) as exc:
            sanitize(raw, "patients")
        assert exc.value.reason == "dollar-quoted and escape strings are not allowed"

    def test_dollar_inside_plain_literal_still_rejected(self):
        with pytest.raises(RejectedStatement):
            sanitize("SELECT * FROM patients WHERE note = $$x$$", "patients")


class TestNestedReads:
    @pytest.mark.parametrize("raw", [
        "SELECT name FROM patients WHERE EXISTS (FROM secrets WHERE token = 'hunter2')",
        "SELECT name FROM patients WHERE age IN (FROM secrets)",
        "SELECT name FROM patients WHERE age IN (TABLE secrets)",
        "SELECT (FROM secrets LIMIT 1) AS leak FROM patients",
    ])
    def test_from_first_subqueries_rejected(self, raw):
        with pytest.raises(RejectedStatement):
            sanitize(raw, "patients")

    @pytest.mark.parametrize("raw", [
        "SELECT * FROM query_table('secrets')",
        "SELECT * FROM patients WHERE EXISTS query('SELECT 1')",
        "SELECT getenv('HOME') FROM patients",
    ])
    def test_table_reading_functions_rejected(self, raw):
        with pytest.raises(RejectedStatement) as exc:
            sanitize(raw, "patients")
        assert exc.value.reason == "reading files or other tables is not allowed"

    def test_extract_from_is_allowed(self):
        result = sanitize("SELECT EXTRACT(year FROM visit_date) AS yr FROM t", "patients")
        assert result.sql == 'SELECT EXTRACT(year FROM visit_date) AS yr FROM "patients" LIMIT 100'

    def test_trim_from_is_allowed(self):
        result = sanitize("SELECT TRIM(BOTH ' ' FROM city) AS c FROM t", "patients")
        assert result.sql == "SELECT TRIM(BOTH ' ' FROM city) AS c FROM \"patients\" LIMIT 100"


class TestLimitExpressions:
    @pytest.mark.parametrize("limit", ["ALL", "1e9", "(100000)", "100%", "10 * 100000", "100 + 1"])
    def test_non_integer_limits_become_the_cap(self, limit):
        result = sanitize(f"SELECT * FROM t LIMIT {limit}", "patients")
        assert result.sql == 'SELECT * FROM "patients" LIMIT 100'
        assert result.row_limit == 100

    def test_offset_is_kept(self):
        result = sanitize("SELECT * FROM t LIMIT ALL OFFSET 5", "patients")
        assert result.sql == 'SELECT * FROM "patients" LIMIT 100 OFFSET 5'
        assert result.row_limit == 100

    def test_plain_limit_with_offset(self):
        result = sanitize("SELECT * FROM t LIMIT 10 OFFSET 20", "patients")
        assert result.sql == 'SELECT * FROM "patients" LIMIT 10 OFFSET 20'
        assert result.row_limit == 10


class TestWindowFunctions:
    def test_window_aggregate_is_not_aggregate(self):
        result = sanitize("SELECT name, MAX(age) OVER () AS oldest FROM t", "patients")
        assert not result.is_aggregate
        assert result.sql == 'SELECT name, MAX(age) OVER () AS oldest FROM "patients" LIMIT 100'

    def test_partitioned_window_gets_cap(self):
        result = sanitize("SELECT city, COUNT(*) OVER (PARTITION BY city) AS n FROM t", "patients")
        assert result.row_limit == 100

    def test_filtered_aggregate_is_aggregate(self):
        result = sanitize("SELECT COUNT(*) FILTER (WHERE age > 30) AS n FROM t", "patients")
        assert result.is_aggregate
        assert result.row_limit is None

    def test_plain_and_window_aggregate_together(self):
        result = sanitize("SELECT SUM(age), MAX(age) OVER () FROM t", "patients")
        assert result.is_aggregate
