# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""SQL guardrails applied before any machine-generated SQL is executed.

Checks, in order (the first failure wins):
  1. Statement must start with SELECT or WITH
  2. No second statement after a semicolon
  3. No comment markers: ``--``, ``/*``, and ``#`` unless the dialect is
     known not to treat it as a comment
  4. No DML/DDL/session/admin keyword anywhere, as a whole word
  5. Every FROM/JOIN must be followed by a subquery or an allowlisted table

These are targeted pattern checks, not a SQL parser. Table references are
only found after FROM/JOIN; a table hidden in an engine-specific construct
is not seen. The layer sits in front of read-only database credentials, not
instead of them. ``strict_parse`` additionally walks a sqlglot parse tree
and allowlists every table it contains.

Usage:
    result = validate_sql('SELECT * FROM "pg_catalog"."pg_authid"', ["public.orders"])
    result.ok      # False
    result.reason  # 'Table not allowed: "pg_catalog"."pg_authid"'

    enforce_limit("SELECT * FROM orders", 500)  # 'SELECT * FROM orders LIMIT 500'
    enforce_limit("SELECT * FROM orders -- all", 5)  # 'SELECT * FROM orders -- all\nLIMIT 5'
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

FORBIDDEN_KEYWORDS = (
    "insert", "update", "delete", "drop", "alter", "create", "truncate",
    "grant", "revoke", "call", "execute", "copy", "vacuum", "analyze",
    "reset", "set", "show", "explain", "listen", "unlisten", "notify",
)
FORBIDDEN_PATTERN = re.compile(rf"\b({'|'.join(FORBIDDEN_KEYWORDS)})\b", re.IGNORECASE)

# Write/DDL verbs only: words like EXPLAIN/SET/SHOW/ANALYZE can appear in
# aliases, so the lighter preview check leaves them out.
WRITE_KEYWORDS = (
    "insert", "update", "delete", "merge", "drop", "alter", "create", "truncate",
    "grant", "revoke", "call", "execute", "copy", "vacuum", "listen", "unlisten", "notify",
)
WRITE_PATTERN = re.compile(rf"\b({'|'.join(WRITE_KEYWORDS)})\b", re.IGNORECASE)

# Bare identifier, "double ""quoted""" identifier, or `backtick``quoted`
IDENTIFIER = r'"(?:""|[^"])*"|`(?:``|[^`])*`|[a-zA-Z_][\w$]*'
IDENTIFIER_PATTERN = re.compile(IDENTIFIER)
# SQLite also accepts a 'single quoted' table name
TABLE_PART = rf"{IDENTIFIER}|'(?:''|[^'])*'"
TABLE_PART_PATTERN = re.compile(TABLE_PART)
# Up to catalog.schema.table
TABLE_REFERENCE_PATTERN = re.compile(
    rf"\s*(?:{TABLE_PART})(?:\s*\.\s*(?:{TABLE_PART})){{0,2}}"
)
# Subquery, function arguments, or a numeric operand (SUBSTRING(x FROM 2))
NON_TABLE_OPERAND_PATTERN = re.compile(r"\s*(?:\(|\d+(?:\.\d+)?(?![\w$]))")
FROM_JOIN_PATTERN = re.compile(r"\b(from|join)\b", re.IGNORECASE)
STATEMENT_START_PATTERN = re.compile(r"^(with|select)\s", re.IGNORECASE)
TRAILING_SEMICOLONS = re.compile(r";+\s*$")
LIMIT_PATTERN = re.compile(r"\blimit\s+\d+\b", re.IGNORECASE)

COMMENT_MARKER_PATTERN = re.compile(r"--|/\*")
STRING_LITERAL_PATTERN = re.compile(r"'[^']*'")
# Comment bodies for the LIMIT check; an unterminated /* runs to the end
BLOCK_COMMENT_PATTERN = re.compile(r"/\*.*?(?:\*/|$)", re.DOTALL)
LINE_COMMENT_PATTERN = re.compile(r"--[^\n]*")
HASH_COMMENT_PATTERN = re.compile(r"#[^\n]*")
UNTERMINATED_BLOCK_COMMENT = re.compile(r"/\*(?:(?!\*/).)*$", re.DOTALL)
# Dialects where "#" is an operator rather than a MySQL-style line comment
NO_HASH_COMMENT_DIALECTS = {"postgresql", "postgres", "sqlite", "csv"}

DEFAULT_SCHEMA = "public"

# Dialect tag -> sqlglot dialect name
SQLGLOT_DIALECTS = {
    "postgresql": "postgres",
    "postgres": "postgres",
    "mysql": "mysql",
    "sqlite": "sqlite",
}


@dataclass(frozen=True)
class GuardrailResult:
    """Outcome of validate_sql: accepted, or rejected with a reason."""
    ok: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        if self.ok:
            return {"ok": True}
        return {"ok": False, "reason": self.reason}


ACCEPTED = GuardrailResult(ok=True)


def _strip(sql: str) -> str:
    return TRAILING_SEMICOLONS.sub("", sql.strip())


def normalize_identifier(identifier: str) -> str:
    """Unquote one identifier part and lower-case it."""
    trimmed = identifier.strip()
    if len(trimmed) >= 2 and trimmed[0] == trimmed[-1] and trimmed[0] in "\"`'":
        quote = trimmed[0]
        trimmed = trimmed[1:-1].replace(quote * 2, quote)
    return trimmed.lower()


def normalize_table_identifier(identifier: str) -> str:
    """Normalize a possibly qualified, possibly quoted table name."""
    parts = TABLE_PART_PATTERN.findall(identifier)
    if not parts:
        return normalize_identifier(identifier)
    return ".".join(normalize_identifier(part) for part in parts)


def iter_table_references(sql: str) -> Iterator[tuple[str, Optional[str]]]:
    """Yield ``(keyword, raw_table)`` for each FROM/JOIN in ``sql``.

    Subqueries and numeric operands are skipped. ``raw_table`` is None when
    the keyword is followed by something that is neither a subquery nor a
    table name.
    """
    for match in FROM_JOIN_PATTERN.finditer(sql):
        if NON_TABLE_OPERAND_PATTERN.match(sql, match.end()):
            continue
        table_match = TABLE_REFERENCE_PATTERN.match(sql, match.end())
        yield match.group(1), table_match.group(0).strip() if table_match else None


def extract_table_tokens(sql: str) -> dict[str, str]:
    """Collect tables named after FROM/JOIN.

    Returns:
        Mapping of normalized name -> raw token as written, in order of
        first appearance.
    """
    tokens: dict[str, str] = {}
    for _, raw in iter_table_references(sql):
        if raw is not None:
            tokens.setdefault(normalize_table_identifier(raw), raw)
    return tokens


def has_hash_comments(dialect: Optional[str]) -> bool:
    """Whether ``#`` may start a line comment (MySQL, or an unknown dialect)."""
    return dialect not in NO_HASH_COMMENT_DIALECTS


def find_comment_marker(sql: str, dialect: Optional[str] = None) -> Optional[str]:
    """Return the first comment marker in ``sql``, quoted text included."""
    match = COMMENT_MARKER_PATTERN.search(sql)
    if match:
        return match.group(0)
    if has_hash_comments(dialect) and "#" in sql:
        return "#"
    return None


def _without_comments(sql: str, dialect: Optional[str]) -> str:
    """Drop string literals and comments, leaving only clauses."""
    stripped = STRING_LITERAL_PATTERN.sub(" ", sql)
    stripped = LINE_COMMENT_PATTERN.sub(" ", BLOCK_COMMENT_PATTERN.sub(" ", stripped))
    if has_hash_comments(dialect):
        stripped = HASH_COMMENT_PATTERN.sub(" ", stripped)
    return stripped


CTE_HEAD_PATTERN = re.compile(
    rf"\s*({IDENTIFIER})\s*(?:\([^()]*\)\s*)?as\s+(?:not\s+)?(?:materialized\s+)?\(",
    re.IGNORECASE,
)
WITH_PATTERN = re.compile(r"^with\s+(?:recursive\s+)?", re.IGNORECASE)
CTE_SEPARATOR_PATTERN = re.compile(r"\s*,")


def _skip_parenthesized(sql: str, pos: int) -> int:
    """Return the index just past the group whose "(" precedes ``pos``, or -1."""
    depth = 1
    while pos < len(sql):
        ch = sql[pos]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return pos + 1
        pos += 1
    return -1


def extract_cte_names(sql: str) -> set[str]:
    """Names defined by a leading WITH clause (lower-cased, unquoted).

    Stops at the first construct it does not recognise, so an unbalanced
    or unusual clause yields fewer names, never extra ones.
    """
    names: set[str] = set()
    head = WITH_PATTERN.match(sql)
    if not head:
        return names
    pos = head.end()
    while True:
        cte = CTE_HEAD_PATTERN.match(sql, pos)
        if not cte:
            break
        names.add(normalize_identifier(cte.group(1)))
        pos = _skip_parenthesized(sql, cte.end())
        if pos == -1:
            break
        separator = CTE_SEPARATOR_PATTERN.match(sql, pos)
        if not separator:
            break
        pos = separator.end()
    return names


def _candidates(normalized: str) -> set[str]:
    """Names under which a referenced table may appear in the allowlist."""
    if "." not in normalized:
        return {normalized, f"{DEFAULT_SCHEMA}.{normalized}"}
    candidates = {normalized}
    prefix = f"{DEFAULT_SCHEMA}."
    if normalized.startswith(prefix):
        candidates.add(normalized[len(prefix):])
    return candidates


def _is_allowed(normalized: str, allowed: set[str]) -> bool:
    return not _candidates(normalized).isdisjoint(allowed)


def validate_sql(sql: str, allowed_tables: Iterable[str], dialect: Optional[str] = None) -> GuardrailResult:
    """Validate that ``sql`` is one read-only statement over allowlisted tables.

    ``dialect`` only decides whether ``#`` counts as a comment marker; when
    it is None, ``#`` is rejected.
    """
    statement = _strip(sql)
    if not STATEMENT_START_PATTERN.match(statement):
        return GuardrailResult(ok=False, reason="Only SELECT (or WITH ... SELECT) allowed")
    if ";" in statement:
        return GuardrailResult(ok=False, reason="Multiple statements not allowed")
    marker = find_comment_marker(statement, dialect)
    if marker:
        return GuardrailResult(ok=False, reason=f"SQL comments not allowed: {marker}")
    if FORBIDDEN_PATTERN.search(statement):
        return GuardrailResult(ok=False, reason="Statement contains forbidden keywords")

    allowed: Optional[set[str]] = None
    cte_names: set[str] = set()
    for keyword, raw in iter_table_references(statement):
        if raw is None:
            return GuardrailResult(ok=False, reason=f"Unrecognized table reference after {keyword.upper()}")
        if allowed is None:
            allowed = {normalize_table_identifier(t) for t in allowed_tables}
            cte_names = extract_cte_names(statement)
        normalized = normalize_table_identifier(raw)
        # An unqualified CTE name shadows any real table of that name
        if normalized in cte_names:
            continue
        if not _is_allowed(normalized, allowed):
            return GuardrailResult(ok=False, reason=f"Table not allowed: {raw}")

    return ACCEPTED


def enforce_limit(sql: str, max_rows: int, dialect: Optional[str] = None) -> str:
    """Append ``LIMIT max_rows`` unless a LIMIT clause is already present.

    A LIMIT inside a comment or string literal does not count. The clause
    goes on its own line when the last line holds a line comment, and an
    unterminated ``/*`` is closed first.

    Idempotent: enforce_limit(enforce_limit(s, n), n) == enforce_limit(s, n).
    """
    statement = _strip(sql)
    if LIMIT_PATTERN.search(_without_comments(statement, dialect)):
        return statement
    if UNTERMINATED_BLOCK_COMMENT.search(STRING_LITERAL_PATTERN.sub(" ", statement)):
        statement = f"{statement} */"
    last_line = statement.rsplit("\n", 1)[-1]
    on_new_line = "--" in last_line or (has_hash_comments(dialect) and "#" in last_line)
    separator = "\n" if on_new_line else " "
    return f"{statement}{separator}LIMIT {max(1, int(max_rows))}"


def is_select_only(sql: str) -> bool:
    """Lighter read-only check without an allowlist (used for previews)."""
    if not sql:
        return False
    statement = _strip(sql)
    if not STATEMENT_START_PATTERN.match(statement):
        return False
    if ";" in statement:
        return False
    return not WRITE_PATTERN.search(statement)


def validate_sql_strict(sql: str, allowed_tables: Iterable[str], dialect: str) -> GuardrailResult:
    """Parse with sqlglot and allowlist every table in the tree.

    Runs after ``validate_sql`` has accepted the statement; catches tables
    inside subqueries and other positions the FROM/JOIN scan does not see.
    """
    import sqlglot
    from sqlglot import exp
    from sqlglot.errors import SqlglotError

    statement = _strip(sql)
    read = SQLGLOT_DIALECTS.get(dialect, dialect)
    try:
        expressions = [e for e in sqlglot.parse(statement, read=read) if e is not None]
    except SqlglotError as e:
        logger.info(f"Strict guardrail could not parse SQL: {e}")
        return GuardrailResult(ok=False, reason="SQL could not be parsed")

    if len(expressions) != 1:
        return GuardrailResult(ok=False, reason="Multiple statements not allowed")
    tree = expressions[0]
    if not isinstance(tree, exp.Query):
        return GuardrailResult(ok=False, reason="Only SELECT (or WITH ... SELECT) allowed")

    cte_names = {cte.alias_or_name.lower() for cte in tree.find_all(exp.CTE)}
    allowed = {normalize_table_identifier(t) for t in allowed_tables}
    for table in tree.find_all(exp.Table):
        if not table.name:
            continue
        parts = [p for p in (table.catalog, table.db, table.name) if p]
        normalized = ".".join(p.lower() for p in parts)
        if len(parts) == 1 and normalized in cte_names:
            continue
        if not _is_allowed(normalized, allowed):
            return GuardrailResult(ok=False, reason=f"Table not allowed: {table.sql(dialect=read)}")

    return ACCEPTED


class Guardrails:
    """Guardrails bound to a connector dialect.

    Usage:
        guards = get_guardrails("postgresql")
        result = guards.validate_sql(sql, allowed_tables)
        if result.ok:
            sql = guards.enforce_limit(sql, 5000)
    """

    def __init__(self, dialect: str, strict_parse: bool = False):
        self.dialect = dialect
        self.strict_parse = strict_parse

    def is_select_only(self, sql: str) -> bool:
        return is_select_only(sql)

    def validate_sql(self, sql: str, allowed_tables: Iterable[str]) -> GuardrailResult:
        allowed = list(allowed_tables)
        result = validate_sql(sql, allowed, self.dialect)
        if result.ok and self.strict_parse:
            result = validate_sql_strict(sql, allowed, self.dialect)
        if not result.ok:
            logger.info(f"Guardrails rejected SQL ({self.dialect}): {result.reason}")
        return result

    def enforce_limit(self, sql: str, max_rows: int) -> str:
        return enforce_limit(sql, max_rows, self.dialect)


def get_guardrails(dialect: str) -> Guardrails:
    """Create guardrails for a dialect using the configured strictness."""
    from datagate.config import get_config
    return Guardrails(dialect, strict_parse=get_config().guardrails.strict_parse)
