"""Token parsing utilities for package identifier lists."""

import re
from typing import Iterable, List, Union

from .models import PackageIdentifier

_LIST_SEPARATOR = re.compile(r",\s?|\n")


def split_identifier_list(value: Union[str, Iterable[str], None]) -> List[str]:
    """Split configured identifier lists into non-blank tokens.

    Accepts a single string separated by commas or newlines (the form used in
    environment variables) or an iterable of such strings.
    """
    if value is None:
        return []
    if isinstance(value, str):
        raw = [value]
    else:
        raw = list(value)

    tokens = []
    for item in raw:
        for token in _LIST_SEPARATOR.split(str(item).strip()):
            token = token.strip()
            if token:
                tokens.append(token)
    return tokens


def parse_identifiers(value: Union[str, Iterable[str], None]) -> List[PackageIdentifier]:
    """Parse a list of ``name|version`` tokens.

    Raises:
        ConfigurationError: For the first malformed token.
    """
    return [PackageIdentifier.from_string(token) for token in split_identifier_list(value)]
