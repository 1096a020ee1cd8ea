"""
SQL Script Runner

Splits a multi-statement SQL script into individual statements and executes
them in file order on a Database handle.

Splitting rules (MySQL script conventions):
- Statements end with the current delimiter (';' unless a
  "DELIMITER xx" line changes it)
- Delimiters inside quoted strings or identifiers are ignored
- "-- ", "#" and /* */ comments are dropped
"""

import logging
from typing import List

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

_QUOTES = ("'", '"', '`')


def _skip_to_line_end(script: str, index: int) -> int:
    end = script.find('\n', index)
    return len(script) if end == -1 else end


def split_statements(script: str) -> List[str]:
    """Split a SQL script into statements, without trailing delimiters"""
    statements: List[str] = []
    buffer: List[str] = []
    delimiter = ';'
    quote = None
    at_line_start = True
    i = 0
    length = len(script)

    def flush():
        statement = ''.join(buffer).strip()
        if statement:
            statements.append(statement)
        buffer.clear()

    while i < length:
        ch = script[i]

        if quote:
            buffer.append(ch)
            if ch == '\\' and quote != '`' and i + 1 < length:
                buffer.append(script[i + 1])
                i += 2
                continue
            if ch == quote:
                # Doubled quote is an escaped quote
                if i + 1 < length and script[i + 1] == quote:
                    buffer.append(script[i + 1])
                    i += 2
                    continue
                quote = None
            i += 1
            continue

        if at_line_start:
            at_line_start = False
            line_end = _skip_to_line_end(script, i)
            line = script[i:line_end].strip()
            if line.upper().startswith('DELIMITER ') and not ''.join(buffer).strip():
                delimiter = line.split(None, 1)[1].strip()
                i = line_end
                continue

        if ch == '\n':
            buffer.append(ch)
            at_line_start = True
            i += 1
            continue

        if ch in _QUOTES:
            quote = ch
            buffer.append(ch)
            i += 1
            continue

        if script.startswith('--', i) and (i + 2 >= length or script[i + 2] in ' \t\r\n'):
            i = _skip_to_line_end(script, i)
            continue

        if ch == '#':
            i = _skip_to_line_end(script, i)
            continue

        if script.startswith('/*', i):
            end = script.find('*/', i + 2)
            i = length if end == -1 else end + 2
            buffer.append(' ')
            continue

        if script.startswith(delimiter, i):
            flush()
            i += len(delimiter)
            continue

        buffer.append(ch)
        i += 1

    flush()
    return statements


class ScriptRunner:
    """
    Executes SQL scripts against a Database.

    The whole script runs in one transaction where the dialect allows it
    (DDL auto-commits on MySQL, so a failed script may be partially applied).
    """

    def __init__(self, db):
        self.db = db

    def run(self, script: str) -> int:
        """
        Execute every statement in the script, then commit.

        Returns:
            Number of statements executed

        Raises:
            SQLAlchemyError: the first failing statement (after rollback)
        """
        statements = split_statements(script)
        executed = 0
        try:
            for statement in statements:
                logger.debug(f"Executing: {statement}")
                self.db.execute_statement(statement)
                executed += 1
            self.db.commit()
        except SQLAlchemyError:
            logger.error(f"Script failed at statement {executed + 1} of {len(statements)}")
            try:
                self.db.rollback()
            except SQLAlchemyError as e:
                logger.debug(f"Rollback after script failure did not complete: {e}")
            raise
        return executed
