"""Splits SQL scripts into individual statements."""

import re
from typing import List

from appserver_testenv.errors import ScriptParseError

DEFAULT_SEPARATOR = ";"
DOLLAR_QUOTE_PATTERN = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")


def _line_number(script: str, index: int) -> int:
    return script.count("\n", 0, index) + 1


def _end_of_quoted(script: str, start: int, quote: str) -> int:
    """Returns the index just past the literal opened at ``start``."""
    index = start + 1
    while True:
        index = script.find(quote, index)
        if index == -1:
            raise ScriptParseError(
                f"Unterminated quoted literal starting at line {_line_number(script, start)}."
            )
        # A doubled quote is an escaped quote inside the literal.
        if script.startswith(quote * 2, index):
            index += 2
            continue
        return index + 1


def _end_of_escape_string(script: str, start: int) -> int:
    """Like :func:`_end_of_quoted` for an ``E'...'`` literal, where a backslash
    escapes the next character."""
    index = start + 1
    length = len(script)
    while index < length:
        char = script[index]
        if char == "\\":
            index += 2
            continue
        if char == "'":
            if script.startswith("''", index):
                index += 2
                continue
            return index + 1
        index += 1
    raise ScriptParseError(
        f"Unterminated quoted literal starting at line {_line_number(script, start)}."
    )


def _starts_escape_string(script: str, index: int) -> bool:
    if script[index] not in ("E", "e") or not script.startswith("'", index + 1):
        return False
    if index == 0:
        return True
    previous = script[index - 1]
    return not (previous.isalnum() or previous in ("_", "$"))


def split_statements(script: str, separator: str = DEFAULT_SEPARATOR) -> List[str]:
    """Splits ``script`` on ``separator`` outside of comments and quoted text.

    Line (``--``) and block (``/* */``) comments are dropped. Single quotes,
    double quotes, ``E'...'`` escape strings and PostgreSQL dollar quotes
    (``$$`` or ``$tag$``) are kept verbatim, so separators inside them do not end a statement.
    """
    if not separator:
        raise ValueError("separator must not be empty")

    statements: List[str] = []
    current: List[str] = []
    index = 0
    length = len(script)

    while index < length:
        if script.startswith("--", index):
            end = script.find("\n", index)
            index = length if end == -1 else end
            current.append(" ")
            continue

        if script.startswith("/*", index):
            end = script.find("*/", index + 2)
            if end == -1:
                raise ScriptParseError(
                    "Missing block comment end delimiter for comment starting at line "
                    f"{_line_number(script, index)}."
                )
            index = end + 2
            current.append(" ")
            continue

        char = script[index]

        if _starts_escape_string(script, index):
            end = _end_of_escape_string(script, index + 1)
            current.append(script[index:end])
            index = end
            continue

        if char in ("'", '"'):
            end = _end_of_quoted(script, index, char)
            current.append(script[index:end])
            index = end
            continue

        if char == "$":
            match = DOLLAR_QUOTE_PATTERN.match(script, index)
            if match:
                tag = match.group(0)
                end = script.find(tag, match.end())
                if end == -1:
                    raise ScriptParseError(
                        f"Unterminated dollar-quoted string {tag} starting at line "
                        f"{_line_number(script, index)}."
                    )
                end += len(tag)
                current.append(script[index:end])
                index = end
                continue

        if script.startswith(separator, index):
            statement = "".join(current).strip()
            if statement:
                statements.append(statement)
            current = []
            index += len(separator)
            continue

        current.append(char)
        index += 1

    statement = "".join(current).strip()
    if statement:
        statements.append(statement)
    return statements
