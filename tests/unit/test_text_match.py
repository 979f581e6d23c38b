"""Unit tests for LIKE helpers."""

from sqlalchemy import column

from opslog.kernel.text_match import contains_ci, startswith


def test_contains_ci_lowercases_both_sides():
    compiled = contains_ci(column("title"), "Generator").compile()
    sql = str(compiled)
    assert "lower(title) LIKE" in sql
    assert "lower(" in sql.split("LIKE", 1)[1]
    assert list(compiled.params.values()) == ["Generator"]


def test_contains_ci_escapes_wildcards():
    compiled = contains_ci(column("title"), "100%_load").compile()
    assert list(compiled.params.values()) == ["100/%/_load"]


def test_startswith_escapes_and_compares_exactly():
    compiled = startswith(column("username"), "al_").compile()
    values = list(compiled.params.values())
    assert "al/_" in values
    assert "al_" in values
    assert "substr(username" in str(compiled)
