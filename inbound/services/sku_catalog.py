"""SKU catalog - the ``is_valid_sku`` capability used by scanner clients.

A SKU is accepted when it is listed in the catalog or matches the configured
pattern. Pattern syntax: ``#`` matches a digit 0-9, ``*`` matches any
character, ``$`` matches any character or none, everything else matches
literally. Example: ``SKU-####`` for SKU-0000 to SKU-9999.
With neither a list nor a pattern configured any non-empty SKU is accepted.
"""
import re
from typing import Iterable, Optional

from inbound.normalize import to_code


def pattern_to_regex(pattern: str) -> Optional[re.Pattern]:
    """Convert a SKU pattern to a compiled, anchored regex."""
    pattern = to_code(pattern)
    if not pattern:
        return None

    regex_parts = []
    for char in pattern:
        if char == "#":
            regex_parts.append("[0-9]")
        elif char == "*":
            regex_parts.append(".")
        elif char == "$":
            regex_parts.append(".?")  # Optional any character
        else:
            regex_parts.append(re.escape(char))

    return re.compile("^" + "".join(regex_parts) + "$")


class SkuCatalog:
    """Pure lookup predicate over known SKUs and/or a SKU pattern."""

    def __init__(self, skus: Iterable[str] = (), pattern: str = ""):
        self.skus = {to_code(s) for s in skus if to_code(s)}
        self.regex = pattern_to_regex(pattern)

    @classmethod
    def from_settings(cls, settings) -> "SkuCatalog":
        return cls(
            skus=settings.SKU_CATALOG.split(","),
            pattern=settings.SKU_PATTERN,
        )

    @property
    def is_open(self) -> bool:
        return not self.skus and self.regex is None

    def is_valid_sku(self, sku: str) -> bool:
        sku = to_code(sku)
        if not sku:
            return False
        if self.is_open:
            return True
        if sku in self.skus:
            return True
        return bool(self.regex and self.regex.match(sku))

    __call__ = is_valid_sku
