"""Working-directory scoping for path-targeting tools."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def normalize_path(path: str | Path, base: str | Path | None = None) -> Path:
    """Make *path* absolute (relative to *base*) and collapse ``..`` and symlinks.

    Raises ``ValueError`` for paths the OS cannot represent (e.g. NUL bytes).
    """
    raw = os.fspath(path)
    if not raw or "\x00" in raw:
        raise ValueError(f"Invalid path: {raw!r}")
    p = Path(raw).expanduser()
    if not p.is_absolute():
        p = Path(base if base is not None else Path.cwd()) / p
    return p.resolve(strict=False)


@dataclass(frozen=True, slots=True)
class WorkingDirectoryScope:
    """Directories a session may touch: the base cwd plus granted extras.

    Scopes only grow within a session; :meth:`with_directory` returns a new
    scope rather than mutating this one.
    """

    base: Path
    additional: frozenset[Path] = field(default_factory=frozenset)

    @classmethod
    def create(
        cls,
        base: str | Path | None = None,
        additional: tuple[str | Path, ...] | list[str | Path] = (),
    ) -> WorkingDirectoryScope:
        base_path = normalize_path(base if base is not None else Path.cwd())
        extra = frozenset(normalize_path(p, base_path) for p in additional)
        return cls(base=base_path, additional=extra - {base_path})

    @property
    def directories(self) -> tuple[Path, ...]:
        return (self.base, *sorted(self.additional))

    def with_directory(self, path: str | Path) -> WorkingDirectoryScope:
        resolved = normalize_path(path, self.base)
        if resolved == self.base or resolved in self.additional:
            return self
        return WorkingDirectoryScope(base=self.base, additional=self.additional | {resolved})

    def contains(self, path: str | Path) -> bool:
        """True if *path* is one of the scope directories or below one."""
        resolved = normalize_path(path, self.base)
        return any(resolved.is_relative_to(d) for d in self.directories)
