from __future__ import annotations

from typing import Protocol


class WorkingTree(Protocol):
    """Version-control primitives behind the guard/restore bracket.

    Methods raise GuardError when version control cannot be reached or a
    mutating command fails.
    """
    def record_baseline(self) -> None:
        """Remember tree state that a snapshot cannot carry, such as empty directories."""
        ...

    def is_dirty(self) -> bool:
        """Return True when there are staged, unstaged or untracked changes."""
        ...

    def snapshot(self, label: str) -> None:
        """Stash every uncommitted change, untracked files included."""
        ...

    def discard_changes(self) -> None:
        """Reset tracked files to HEAD, delete untracked files and put the baseline back."""
        ...

    def restore_snapshot(self) -> None:
        """Re-apply the snapshot taken by ``snapshot``, staged state included."""
        ...

    def config_value(self, key: str) -> str | None:
        """Return a version-control config value, or None when unset."""
        ...

    def has_hook(self, name: str) -> bool:
        """Return True when a hook script with this name is installed."""
        ...
