from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class Transport(Protocol):
    """
    Public transport contract.

    A transport turns a URI into a local file at `dest` and raises
    TransportError (or a subclass) on failure. Transports are built per call
    from the current Settings and hold no state between calls.
    """

    def materialize(self, uri: str, dest: Path) -> None: ...
