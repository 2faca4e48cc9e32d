from __future__ import annotations

import logging
from pathlib import Path

from bundleuri.core.config_store import ConfigStore
from bundleuri.core.objects import ObjectStore
from bundleuri.core.refs import RefStore

log = logging.getLogger("bundleuri.core.repository")


class Repository:
    """A local mirror: object store, ref store and config store under one directory.

        <root>/objects/        packs + staging area (bundles/tmp_uri_*)
        <root>/refs.sqlite     refs and reflog
        <root>/config.yaml     multi-valued configuration
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser().resolve()
        self.objects = ObjectStore(self.root / "objects")
        self.refs = RefStore(self.root / "refs.sqlite", object_exists=self.objects.has_object)
        self.config = ConfigStore(self.root / "config.yaml")

    def __repr__(self) -> str:
        return f"Repository({str(self.root)!r})"

    @classmethod
    def init(cls, root: str | Path) -> "Repository":
        repo = cls(root)
        repo.objects.init()
        if repo.config.get("core.repositoryformatversion") is None:
            repo.config.set_multivar("core.repositoryformatversion", "0")
        log.info("initialized repository at %s", repo.root)
        return repo

    @classmethod
    def open(cls, root: str | Path) -> "Repository":
        p = Path(root).expanduser().resolve()
        if not (p / "objects").is_dir():
            raise FileNotFoundError(f"not a repository (no objects directory): {p}")
        return cls(p)
