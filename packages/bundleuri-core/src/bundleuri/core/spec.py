from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

# ---------------------------------------------------------------------------
# Bundle list files
# ---------------------------------------------------------------------------

BundleKeyValue = Union[str, int, float, bool]


class BundleListFileSpec(BaseModel):
    """YAML bundle list schema.

        bundle:
          list:
            version: 1
            mode: any
          <id>:
            uri: https://example.com/main.bundle

    Only the shape is checked here. Every leaf becomes a `bundle.<section>.<key>`
    pair and goes through `bundle_list_update`, which owns the semantics.
    """

    model_config = ConfigDict(extra="forbid")

    bundle: Dict[str, Dict[str, BundleKeyValue]] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Fetch results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RefUpdate:
    """One ref written while translating a bundle's heads."""

    name: str
    new_oid: str
    old_oid: Optional[str] = None


@dataclass
class BundleFetchResult:
    uri: str
    updated_refs: List[RefUpdate] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "uri": self.uri,
            "updated_refs": [
                {"name": r.name, "old_oid": r.old_oid, "new_oid": r.new_oid}
                for r in self.updated_refs
            ],
        }


__all__ = [
    # bundle lists
    "BundleKeyValue",
    "BundleListFileSpec",
    # fetch
    "RefUpdate",
    "BundleFetchResult",
]
