"""In-memory bundle list: global mode/version plus per-id remote bundle descriptors.

A list starts out with the implied defaults (version 1, mode "all", no bundles)
and is mutated one `bundle.*` key at a time by `bundle_list_update`. Keys may
arrive in any order and the same key may be applied repeatedly.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional

BUNDLE_KEY_PREFIX = "bundle."

# Reserved for list-level keys (bundle.list.version, bundle.list.mode).
LIST_ID = "list"


class BundleMode(str, enum.Enum):
    ALL = "all"
    ANY = "any"


@dataclass
class RemoteBundleInfo:
    id: str
    uri: Optional[str] = None
    # Local path of the downloaded copy; only set while a fetch is in progress.
    file: Optional[str] = None


BundleVisitor = Callable[[RemoteBundleInfo], int]


class BundleList:
    def __init__(self) -> None:
        # Implied defaults.
        self.version = 1
        self.mode = BundleMode.ALL
        self.bundles: Dict[str, RemoteBundleInfo] = {}

    def __len__(self) -> int:
        return len(self.bundles)

    def __iter__(self) -> Iterator[RemoteBundleInfo]:
        return iter(list(self.bundles.values()))

    def get(self, bundle_id: str) -> Optional[RemoteBundleInfo]:
        return self.bundles.get(bundle_id)

    def get_or_create(self, bundle_id: str) -> RemoteBundleInfo:
        info = self.bundles.get(bundle_id)
        if info is None:
            info = RemoteBundleInfo(id=bundle_id)
            self.bundles[bundle_id] = info
        return info

    def for_each(self, visitor: BundleVisitor) -> int:
        """Apply `visitor` to every bundle; stop at the first non-zero result and return it."""
        for info in list(self.bundles.values()):
            result = visitor(info)
            if result:
                return result
        return 0

    def clear(self) -> None:
        self.bundles.clear()


def bundle_list_update(key: str, value: str, bundle_list: BundleList) -> bool:
    """Fold one key/value pair into `bundle_list`.

    Returns True if the pair was understood, False if the key is not a
    `bundle.*` key or the value is malformed. A False result leaves the list
    unchanged (apart from a descriptor created for a well-formed `<id>.<field>`
    key) and callers are free to ignore it and keep feeding keys.
    """
    if not key.startswith(BUNDLE_KEY_PREFIX):
        return False
    pkey = key[len(BUNDLE_KEY_PREFIX):]

    if pkey == "list.version":
        try:
            version = int(value.strip())
        except (AttributeError, ValueError):
            return False
        if version != 1:
            return False
        bundle_list.version = version
        return True

    if pkey == "list.mode":
        if value == "all":
            bundle_list.mode = BundleMode.ALL
        elif value == "any":
            bundle_list.mode = BundleMode.ANY
        else:
            return False
        return True

    # All remaining keys must be of the form "bundle.<id>.<field>" where <id> != "list".
    bundle_id, dot, field = pkey.partition(".")
    if not dot or bundle_id == LIST_ID:
        return False

    info = bundle_list.get_or_create(bundle_id)

    if field == "uri":
        info.uri = value
        return True

    # Anything else is a hint for a heuristic we do not understand yet.
    return True
