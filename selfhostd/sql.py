"""
SQL quoting shared by every statement sent to postgres.

Identifiers (database and role names) are restricted to [a-zA-Z0-9_]+ before
they are quoted; values are embedded as standard string literals.
"""

import re

from selfhostd.errors import ConfigError

IDENTIFIER_RE = re.compile(r"^[a-zA-Z0-9_]+$")


def validate_identifier(value: str, label: str = "identifier") -> str:
    if not isinstance(value, str) or not IDENTIFIER_RE.match(value):
        raise ConfigError(f"invalid {label} {value!r}: must match {IDENTIFIER_RE.pattern}")
    return value


def quote_ident(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    if "\x00" in value:
        raise ConfigError("string values must not contain NUL characters")
    return "'" + value.replace("'", "''") + "'"
