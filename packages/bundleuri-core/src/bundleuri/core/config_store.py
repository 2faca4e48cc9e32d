from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from bundleuri.core.exception import ConfigError

log = logging.getLogger("bundleuri.core.config")


def canonical_key(key: str) -> str:
    """Lower-case the section and variable name; keep any subsection as written.

    `Log.excludeDecoration` -> `log.excludedecoration`
    `Remote.Origin.URL` -> `remote.Origin.url`
    """
    first = key.find(".")
    last = key.rfind(".")
    if first <= 0 or last == len(key) - 1:
        raise ConfigError(f"key does not contain a section: {key}")
    section = key[:first].lower()
    name = key[last + 1:].lower()
    if first == last:
        return f"{section}.{name}"
    return f"{section}.{key[first + 1:last]}.{name}"


class ConfigStore:
    """Persistent multi-valued key/value configuration kept in a YAML file.

    Each key maps to a list of values in insertion order, the same way a git
    config file may repeat a variable.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, List[str]]:
        if not self.path.exists():
            return {}
        try:
            raw = yaml.safe_load(self.path.read_text("utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"malformed config file {self.path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"config file {self.path} must be a mapping")
        out: Dict[str, List[str]] = {}
        for k, v in raw.items():
            values = v if isinstance(v, list) else [v]
            out[str(k)] = [str(x) for x in values]
        return out

    def _save(self, data: Dict[str, List[str]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".lock", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump({k: v for k, v in data.items() if v}, f, sort_keys=True, allow_unicode=True)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get_all(self, key: str) -> List[str]:
        return list(self._load().get(canonical_key(key), []))

    def get(self, key: str) -> Optional[str]:
        """Last value wins, as with a repeated config variable."""
        values = self.get_all(key)
        return values[-1] if values else None

    def add(self, key: str, value: str) -> None:
        data = self._load()
        data.setdefault(canonical_key(key), []).append(str(value))
        self._save(data)

    def set_multivar(
        self,
        key: str,
        value: Optional[str],
        value_pattern: Optional[str] = None,
        *,
        fixed_value: bool = False,
        replace_all: bool = False,
    ) -> None:
        """Replace (or with value=None, remove) the entries of `key` matching `value_pattern`.

        - value_pattern None matches every entry of the key.
        - fixed_value compares entries to value_pattern literally, otherwise it is a regex.
        - Without replace_all, more than one match is an error.
        - When nothing matches, `value` is appended.
        """
        ckey = canonical_key(key)
        if fixed_value and value_pattern is None:
            raise ConfigError("fixed_value requires a value_pattern")

        if value_pattern is None:
            matches = lambda v: True  # noqa: E731
        elif fixed_value:
            matches = lambda v: v == value_pattern  # noqa: E731
        else:
            try:
                rx = re.compile(value_pattern)
            except re.error as e:
                raise ConfigError(f"invalid value pattern {value_pattern!r}: {e}") from e
            matches = lambda v: rx.search(v) is not None  # noqa: E731

        data = self._load()
        current = data.get(ckey, [])
        hits = [i for i, v in enumerate(current) if matches(v)]
        if len(hits) > 1 and not replace_all:
            raise ConfigError(f"{ckey} has multiple values; cannot overwrite them with a single value")

        if value is None:
            updated = [v for i, v in enumerate(current) if i not in hits]
        elif not hits:
            updated = current + [str(value)]
        else:
            updated = []
            for i, v in enumerate(current):
                if i == hits[0]:
                    updated.append(str(value))
                elif i not in hits:
                    updated.append(v)

        data[ckey] = updated
        self._save(data)
        log.debug("config %s updated: %d -> %d value(s)", ckey, len(current), len(updated))

    def ensure_exact_value_present(self, key: str, value: str) -> None:
        """Leave exactly one `key = value` entry, however many existed before."""
        self.set_multivar(key, value, value, fixed_value=True, replace_all=True)
