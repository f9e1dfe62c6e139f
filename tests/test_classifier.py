# tests/test_classifier.py
import pytest

from lux_core.classifier import (
    DestructiveKind,
    analyze_sql,
    classify,
    contains_write_keyword,
    has_multiple_statements,
    is_sql_read_safe,
)


# ---- multi-statement detection ----

def test_single_statement():
    assert not has_multiple_statements("SELECT * FROM users")


def test_trailing_semicolon_and_whitespace_is_single():
    assert not has_multiple_statements("SELECT * FROM users;")
    assert not has_multiple_statements("SELECT * FROM users;  \n  ")
    assert not has_multiple_statements("SELECT 1;\t\r\n")


def test_two_and_three_statements():
    assert has_multiple_statements("INSERT INTO t VALUES (1); SELECT * FROM t")
    assert has_multiple_statements("BEGIN; INSERT INTO t VALUES (1); COMMIT")


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT 'hello; world' FROM t",
        'SELECT "col;name" FROM t',
        "SELECT * -- ; comment\nFROM t",
        "SELECT * /* ; */ FROM t",
        "SELECT $$ hello; world $$ FROM t",
        "SELECT $fn$hello;world$fn$",
        "",
    ],
)
def test_semicolons_inside_literals_and_comments_are_ignored(sql):
    assert not has_multiple_statements(sql)


def test_real_multi_statement_next_to_literals():
    assert has_multiple_statements("INSERT INTO t VALUES ('a;b'); SELECT 1")
    assert has_multiple_statements("SELECT $fn$hello$fn$; DROP TABLE x")


def test_comment_after_semicolon_counts_as_content():
    assert has_multiple_statements("SELECT 1; -- done")


# ---- write keywords ----

def test_write_keyword_needs_word_boundaries():
    assert contains_write_keyword("WITH x AS (DELETE FROM t RETURNING *) SELECT * FROM x")
    assert not contains_write_keyword("SELECT * FROM delete_log")
    assert not contains_write_keyword("SELECT updated_at FROM t")
    assert not contains_write_keyword("SELECT create2 FROM t")


def test_write_keyword_inside_literals_is_ignored():
    assert not contains_write_keyword("SELECT 'DELETE' FROM t")
    assert not contains_write_keyword('SELECT "drop" FROM t')
    assert not contains_write_keyword("SELECT 1 -- update later")
    assert not contains_write_keyword("SELECT $$ insert $$")


def test_write_keyword_is_case_insensitive():
    assert contains_write_keyword("with x as (insert into t values (1) returning *) select 1")
    assert contains_write_keyword("GRANT SELECT ON t TO bob")


# ---- read-only whitelist ----

@pytest.mark.parametrize(
    "sql",
    [
        "SELECT 1",
        "select * from users",
        "   \n\tSELECT 1",
        "SHOW search_path",
        "EXPLAIN SELECT 1",
        "EXPLAIN ANALYZE SELECT 1",
        "WITH a AS (SELECT 1) SELECT * FROM a",
        "SELECT * FROM users WHERE action = 'DELETE'",
        "SELECT * FROM delete_log",
        "SELECT 1;",
    ],
)
def test_read_safe(sql):
    assert is_sql_read_safe(sql)


@pytest.mark.parametrize(
    "sql",
    [
        "",
        "   ",
        "INSERT INTO users VALUES (1)",
        "DELETE FROM users",
        "COPY users TO '/tmp/file'",
        "DO $$ BEGIN DELETE FROM users; END $$",
        "SELECT 1; DROP TABLE users",
        "WITH cte AS (DELETE FROM users RETURNING *) SELECT * FROM cte",
        "WITH ins AS (INSERT INTO log(msg) VALUES('x') RETURNING *) SELECT * FROM ins",
        "WITH upd AS (UPDATE users SET name='x' RETURNING *) SELECT * FROM upd",
        "EXPLAIN ANALYZE DELETE FROM users",
        "EXPLAIN ANALYZE UPDATE users SET name = 'x'",
        "EXPLAIN ANALYZE INSERT INTO users VALUES (1)",
        "BEGIN",
        "VACUUM",
    ],
)
def test_not_read_safe(sql):
    assert not is_sql_read_safe(sql)


def test_select_prefix_is_byte_prefix_only():
    # SELECTx still starts with SELECT: prefix checks have no word boundary.
    assert is_sql_read_safe("SELECTx")


# ---- destructive detection ----

def test_select_is_not_destructive():
    r = analyze_sql("SELECT * FROM users")
    assert not r.is_destructive
    assert r.kind == DestructiveKind.NONE
    assert r.operation == ""


def test_drop_truncate_alter_are_destructive():
    assert analyze_sql("DROP TABLE users").operation == "DROP"
    assert analyze_sql("TRUNCATE users").operation == "TRUNCATE"
    r = analyze_sql("ALTER TABLE users ADD COLUMN age int")
    assert r.is_destructive
    assert r.kind == DestructiveKind.ALTER
    assert r.warning == "This will modify the table schema. Review carefully."


def test_drop_warning_text():
    r = analyze_sql("drop table users")
    assert r.is_destructive
    assert r.operation == "DROP"
    assert r.warning == "This will permanently drop the object. This cannot be undone."


def test_delete_without_where():
    r = analyze_sql("\t\n  DELETE FROM users")
    assert r.is_destructive
    assert r.kind == DestructiveKind.DELETE
    assert r.warning == "DELETE without WHERE clause will delete ALL rows."


def test_delete_with_where_is_not_destructive():
    assert not analyze_sql("DELETE FROM users WHERE id = 1").is_destructive


def test_update_where_rules():
    r = analyze_sql("UPDATE users SET name = 'x'")
    assert r.is_destructive
    assert r.warning == "UPDATE without WHERE clause will update ALL rows."
    assert not analyze_sql("update users set name = 'x' WHERE id = 1").is_destructive


def test_where_check_is_lexical():
    # Any standalone WHERE counts, even inside a string or comment.
    assert not analyze_sql("DELETE FROM users -- where").is_destructive
    assert not analyze_sql("UPDATE t SET note = 'where'").is_destructive
    # Digits are not boundaries, letters are.
    assert not analyze_sql("DELETE FROM t WHERE1").is_destructive
    assert analyze_sql("DELETE FROM nowhere").is_destructive


@pytest.mark.parametrize(
    "sql",
    [
        "",
        "   \t\n  ",
        "GRANT SELECT ON users TO reader",
        "CREATE TABLE new_table (id int)",
        "INSERT INTO t VALUES (1)",
    ],
)
def test_not_destructive(sql):
    assert not analyze_sql(sql).is_destructive


def test_classify_bundles_everything():
    c = classify("SELECT 1; DROP TABLE x")
    assert c.is_multi_statement
    assert not c.is_read_safe
    assert not c.is_destructive

    c = classify("TRUNCATE logs")
    assert c.is_destructive
    assert c.destructive_kind == DestructiveKind.TRUNCATE
    assert "ALL rows" in c.warning
    assert not c.is_read_safe


def test_classifier_never_raises_on_garbage():
    for sql in ["'", '"', "$", "$$", "/*", "--", ";;;", "\x00", "SELECT é;é"]:
        classify(sql)
