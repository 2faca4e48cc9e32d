from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, TextIO, Tuple

import yaml
from pydantic import ValidationError

from bundleuri.core.bundle_list import BUNDLE_KEY_PREFIX, LIST_ID, BundleList, bundle_list_update
from bundleuri.core.exception import SpecError
from bundleuri.core.spec import BundleKeyValue, BundleListFileSpec

log = logging.getLogger("bundleuri.core.manifest")

_YAML_SUFFIXES = {".yaml", ".yml"}


def _scalar(value: BundleKeyValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def parse_key_values(lines: Iterable[str], bundle_list: BundleList) -> List[str]:
    """Feed `key=value` lines into `bundle_list`.

    Blank lines and `#` comments are skipped. Returns the keys that were not
    understood; they do not stop parsing.
    """
    unrecognized: List[str] = []
    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, eq, value = line.partition("=")
        key = key.strip()
        if not eq:
            log.debug("bundle list line %d has no '=': %r", lineno, line)
            unrecognized.append(key)
            continue
        if not bundle_list_update(key, value.strip(), bundle_list):
            log.debug("unrecognized bundle list key %r (line %d)", key, lineno)
            unrecognized.append(key)
    return unrecognized


def _flatten_yaml(raw: object, *, source: str) -> List[Tuple[str, str]]:
    if raw is None:
        return []
    if not isinstance(raw, dict):
        raise SpecError(f"Bundle list must be a YAML mapping (object): {source}")
    try:
        spec = BundleListFileSpec.model_validate(raw)
    except ValidationError as exc:
        raise SpecError(f"Invalid bundle list {source}: {exc}") from exc

    pairs: List[Tuple[str, str]] = []
    for section, values in spec.bundle.items():
        # `bundle.<id>.<field>` splits on the first dot after the prefix.
        if "." in section:
            raise SpecError(f"Invalid bundle list {source}: bundle id {section!r} must not contain '.'")
        for k, v in values.items():
            value = _scalar(v)
            if "\n" in value or "\r" in value:
                raise SpecError(f"Invalid bundle list {source}: bundle.{section}.{k} contains a line break")
            pairs.append((f"{BUNDLE_KEY_PREFIX}{section}.{k}", value))
    return pairs


def load_bundle_list(path: str | Path, bundle_list: BundleList | None = None) -> BundleList:
    """Load a bundle list from a `key=value` file or a YAML document.

    YAML is chosen by file suffix (.yaml/.yml). Unrecognized keys are ignored.
    """
    p = Path(path)
    bundle_list = bundle_list if bundle_list is not None else BundleList()
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise SpecError(f"Cannot read bundle list {p}: {exc}") from exc

    if p.suffix.lower() in _YAML_SUFFIXES:
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise SpecError(f"Invalid YAML in bundle list {p}: {exc}") from exc
        ignored = [k for k, v in _flatten_yaml(raw, source=str(p)) if not bundle_list_update(k, v, bundle_list)]
    else:
        ignored = parse_key_values(text.splitlines(), bundle_list)

    if ignored:
        log.info("ignored %d unrecognized bundle list key(s) in %s: %s", len(ignored), p, ", ".join(ignored))
    return bundle_list


def print_bundle_list(bundle_list: BundleList, out: TextIO) -> None:
    """Write `bundle_list` back out as `key=value` lines (bundles sorted by id)."""
    out.write(f"{BUNDLE_KEY_PREFIX}{LIST_ID}.version={bundle_list.version}\n")
    out.write(f"{BUNDLE_KEY_PREFIX}{LIST_ID}.mode={bundle_list.mode.value}\n")
    for bundle_id in sorted(bundle_list.bundles):
        info = bundle_list.bundles[bundle_id]
        if info.uri is not None:
            out.write(f"{BUNDLE_KEY_PREFIX}{bundle_id}.uri={info.uri}\n")


def bundle_list_as_dict(bundle_list: BundleList) -> dict:
    return {
        "version": bundle_list.version,
        "mode": bundle_list.mode.value,
        "bundles": {
            bundle_id: {"uri": bundle_list.bundles[bundle_id].uri}
            for bundle_id in sorted(bundle_list.bundles)
        },
    }
