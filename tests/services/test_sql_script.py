import pytest

from appserver_testenv.errors import ScriptParseError
from appserver_testenv.services.sql_script import split_statements


def test_split_statements_drops_comments_and_blank_statements():
    script = """
    -- users of the application
    CREATE TABLE users (id SERIAL PRIMARY KEY, name TEXT);
    /* audit
       trail */
    CREATE TABLE audit (id SERIAL PRIMARY KEY);;
    """

    assert split_statements(script) == [
        "CREATE TABLE users (id SERIAL PRIMARY KEY, name TEXT)",
        "CREATE TABLE audit (id SERIAL PRIMARY KEY)",
    ]


def test_split_statements_keeps_separators_inside_quotes():
    script = (
        "INSERT INTO notes (body) VALUES ('a;b -- not a comment');\n"
        "INSERT INTO notes (body) VALUES ('it''s; fine');\n"
        'CREATE TABLE "odd;name" (id INT)'
    )

    assert split_statements(script) == [
        "INSERT INTO notes (body) VALUES ('a;b -- not a comment')",
        "INSERT INTO notes (body) VALUES ('it''s; fine')",
        'CREATE TABLE "odd;name" (id INT)',
    ]


def test_split_statements_keeps_dollar_quoted_bodies_whole():
    script = """
    CREATE FUNCTION touch() RETURNS trigger AS $body$
    BEGIN
      NEW.updated_at := now();
      RETURN NEW;
    END;
    $body$ LANGUAGE plpgsql;
    SELECT $$;$$;
    """

    statements = split_statements(script)

    assert len(statements) == 2
    assert statements[0].startswith("CREATE FUNCTION touch()")
    assert statements[0].endswith("LANGUAGE plpgsql")
    assert statements[1] == "SELECT $$;$$"


def test_positional_parameters_are_not_dollar_quotes():
    assert split_statements("PREPARE q AS SELECT $1; EXECUTE q(1)") == [
        "PREPARE q AS SELECT $1",
        "EXECUTE q(1)",
    ]


def test_unterminated_block_comment_is_a_parse_error():
    with pytest.raises(ScriptParseError, match="line 2"):
        split_statements("SELECT 1;\n/* never closed\nSELECT 2;")


def test_unterminated_literal_is_a_parse_error():
    with pytest.raises(ScriptParseError, match="Unterminated quoted literal"):
        split_statements("INSERT INTO t VALUES ('oops);")


def test_split_statements_honours_backslash_escapes_in_escape_strings():
    script = "INSERT INTO notes (body) VALUES (E'it\\'s; x');\nSELECT e'\\\\';\nSELECT name'x'"

    assert split_statements(script) == [
        "INSERT INTO notes (body) VALUES (E'it\\'s; x')",
        "SELECT e'\\\\'",
        "SELECT name'x'",
    ]
