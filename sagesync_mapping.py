from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

import structlog

from sagesync_config import LocationMapping

logger = structlog.get_logger()


@dataclass(frozen=True)
class KeywordRule:
    """Route an item to `warehouse_code` when any keyword appears in its code or description."""

    name: str
    keywords: tuple[str, ...]
    warehouse_code: str

    def matches(self, item_code: str, description: str) -> bool:
        code_u = (item_code or "").upper()
        desc_u = (description or "").upper()
        return any(kw.upper() in code_u or kw.upper() in desc_u for kw in self.keywords if kw)


def first_match(rules: Iterable[KeywordRule], item_code: str, description: str) -> KeywordRule | None:
    for rule in rules:
        if rule.matches(item_code, description):
            return rule
    return None


class LocationMapper:
    def __init__(self, mappings: Mapping[str, LocationMapping]):
        self._defaults: dict[str, str] = {}
        self._rules: dict[str, tuple[KeywordRule, ...]] = {}
        for location, m in mappings.items():
            self._defaults[location] = m.warehouse_code
            self._rules[location] = tuple(
                KeywordRule(r.name, tuple(r.keywords), r.warehouse_code) for r in m.special_rules
            )

    @property
    def locations(self) -> list[str]:
        return list(self._defaults)

    def map_location(self, source_location: str, item_code: str = "", description: str = "") -> str | None:
        """Return the Fracttal warehouse code for a Sage location, or None if unmapped.

        Special rules are checked in declaration order and the first hit wins,
        so hazardous-material rules listed first pre-empt broader ones.
        """
        default = self._defaults.get(source_location)
        if default is None:
            logger.warning("No mapping for location", location=source_location)
            return None

        rule = first_match(self._rules[source_location], item_code, description)
        if rule is not None:
            logger.debug(
                "Special rule applied",
                rule=rule.name,
                item=item_code,
                warehouse=rule.warehouse_code,
            )
            return rule.warehouse_code
        return default
