"""Container display name rewriting."""

import json
import logging
from pathlib import Path
from typing import Iterable, NamedTuple, Optional, Union

from harborwatch.exceptions import ConfigLoadError
from harborwatch.utils.security import sanitize_log_message

logger = logging.getLogger(__name__)


class NameRule(NamedTuple):
    """Rewrite ``match`` substrings in a raw container name to ``display``."""

    match: str
    display: str


def load_rules(path: Union[str, Path]) -> list[NameRule]:
    """Read rewrite rules from a JSON file.

    The file holds an ordered list of ``{"key": <substring>, "value": <name>}``
    objects, e.g. ``[{"key": "coolify_db", "value": "Database"}]``.

    Raises:
        ConfigLoadError: If the file is missing, unreadable or malformed
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigLoadError(str(path), "file not found")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigLoadError(str(path), f"unreadable: {e}")
    except json.JSONDecodeError as e:
        raise ConfigLoadError(str(path), f"invalid JSON: {e}")

    if not isinstance(data, list):
        raise ConfigLoadError(str(path), "expected a list of {key, value} objects")

    rules: list[NameRule] = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ConfigLoadError(str(path), f"entry {index} is not an object")
        key = entry.get("key")
        value = entry.get("value")
        if not isinstance(key, str) or not isinstance(value, str) or not key:
            raise ConfigLoadError(str(path), f"entry {index} needs string 'key' and 'value'")
        rules.append(NameRule(key, value))
    return rules


class ContainerNameMapper:
    """Map raw Docker container names to friendly display names.

    Rules are applied in order and the first rule whose ``match`` is a
    substring of the raw name wins. Names without a match are returned as-is
    (minus the leading slash Docker puts on names).
    """

    def __init__(self, rules: Optional[Iterable[NameRule]] = None) -> None:
        self._rules: tuple[NameRule, ...] = tuple(rules or ())

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ContainerNameMapper":
        """Build a mapper from a rules file, falling back to raw names on error."""
        try:
            rules = load_rules(path)
        except ConfigLoadError as e:
            logger.warning(
                f"Could not load container name mappings, using raw names: "
                f"{sanitize_log_message(str(e))}"
            )
            return cls()

        logger.info(f"Loaded {len(rules)} container name mappings from {path}")
        return cls(rules)

    @property
    def rules(self) -> tuple[NameRule, ...]:
        return self._rules

    def display_name(self, raw_name: str) -> str:
        """Return the display name for ``raw_name``."""
        name = raw_name.lstrip("/")
        for rule in self._rules:
            if rule.match in name:
                return rule.display
        return name
