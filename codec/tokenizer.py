"""Tokenizer splitting an iCalendar document into logical content lines."""
import logging
import re
from typing import Dict, List, NamedTuple, Optional, Union

logger = logging.getLogger(__name__)

_FOLD_PATTERN = re.compile(r'\n[ \t]')


class ContentLine(NamedTuple):
    """One logical ``NAME;PARAM=VALUE:value`` line."""
    name: str
    params: Dict[str, str]
    value: str

    def param(self, key: str) -> Optional[str]:
        return self.params.get(key.upper())


def normalize_newlines(text: str) -> str:
    return text.replace('\r\n', '\n').replace('\r', '\n')


def unfold(text: str) -> str:
    """
    Join folded continuation lines.

    A line starting with a space or tab continues the previous one; the
    newline and the single fold character are removed. Runs before any
    splitting because a fold can fall in the middle of a value.
    """
    return _FOLD_PATTERN.sub('', normalize_newlines(text))


def _split_outside_quotes(text: str, separator: str, maxsplit: int = -1) -> List[str]:
    parts = []
    current = []
    in_quotes = False
    for char in text:
        if char == '"':
            in_quotes = not in_quotes
        elif char == separator and not in_quotes and maxsplit != 0:
            parts.append(''.join(current))
            current = []
            maxsplit -= 1
            continue
        current.append(char)
    parts.append(''.join(current))
    return parts


def parse_line(line: str) -> Optional[ContentLine]:
    """
    Split one unfolded line into name, params and value.

    Returns:
        ContentLine or None for a malformed line (no colon, empty name)
    """
    parts = _split_outside_quotes(line, ':', maxsplit=1)
    if len(parts) < 2:
        return None

    head, value = parts
    name, *raw_params = _split_outside_quotes(head, ';')
    name = name.strip().upper()
    if not name:
        return None

    params = {}
    for raw in raw_params:
        key, sep, param_value = raw.partition('=')
        if not sep:
            continue
        params[key.strip().upper()] = param_value.strip().strip('"')

    return ContentLine(name=name, params=params, value=value)


def tokenize(document: Union[str, bytes]) -> List[ContentLine]:
    """
    Tokenize an ICS document.

    Args:
        document: Raw ICS text or UTF-8 bytes

    Returns:
        Ordered list of ContentLine tuples; malformed lines are skipped
    """
    if isinstance(document, bytes):
        document = document.decode('utf-8', errors='replace')
    document = document.lstrip('\ufeff')

    lines = []
    skipped = 0
    for raw_line in unfold(document).split('\n'):
        if not raw_line.strip():
            continue
        content_line = parse_line(raw_line)
        if content_line is None:
            skipped += 1
            continue
        lines.append(content_line)

    if skipped:
        logger.debug(f"Skipped {skipped} malformed content lines")
    return lines
