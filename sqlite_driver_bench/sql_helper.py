"""
SQL Helper utilities for splitting the statement scripts the backends execute.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
import sqlparse
from sqlparse.tokens import Comment, Name


def remove_sql_comments(sql_text: str) -> str:
    """
    Remove SQL comments from a SQL string using sqlparse.
    Handles:
    - Single-line comments (-- comment)
    - Multi-line comments (/* comment */)
    - Preserves comments within string literals
    Args:
        sql_text: SQL string that may contain comments
    Returns:
        SQL string with comments removed
    """
    if not sql_text:
        return sql_text
    return sqlparse.format(sql_text, strip_comments=True)


def is_single_statement(sql_text: str) -> bool:
    """
    Cheap check used before every execution: text with no semicolon other
    than a trailing one and no comment markers is a single statement and
    needs no parsing.
    """
    body = sql_text.strip().rstrip(";")
    return ";" not in body and "--" not in body and "/*" not in body


def parse_sql_statements(sql_text: str, strip_semicolon: bool = True) -> list[str]:
    """
    Split a SQL script into individual statements using sqlparse.

    Statements that are empty or contain only comments are dropped, and
    semicolons inside string literals are left alone.

    Args:
        sql_text: SQL string that may contain multiple statements
        strip_semicolon: If True, strip trailing semicolons (default: True)

    Returns:
        List of individual SQL statements, in script order
    """
    if not sql_text or not sql_text.strip():
        return []
    if is_single_statement(sql_text):
        stmt = sql_text.strip()
        if not stmt.rstrip(";").strip():
            return []
        return [stmt.rstrip(";").strip() if strip_semicolon else stmt]

    clean_sql = remove_sql_comments(sql_text)
    statements = []
    for parsed in sqlparse.parse(clean_sql):
        stmt = str(parsed).strip()
        if not stmt or stmt == ";":
            continue
        tokens = list(parsed.flatten())
        if all(t.is_whitespace or t.ttype in Comment for t in tokens):
            continue
        statements.append(stmt)
    if strip_semicolon:
        statements = [stmt.rstrip(";").strip() for stmt in statements]
    return [stmt for stmt in statements if stmt]


def count_placeholders(sql_text: str) -> int:
    """
    Number of bind parameter markers (``?``, ``:name``, ...) in a statement.
    Markers inside string literals and comments are not counted.
    """
    if not sql_text or not any(marker in sql_text for marker in "?:$"):
        return 0
    return sum(
        1
        for parsed in sqlparse.parse(sql_text)
        for token in parsed.flatten()
        if token.ttype in Name.Placeholder
    )
