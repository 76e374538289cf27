from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from infra_audit.core.guard import GuardError


logger = logging.getLogger(__name__)

# Stash entries are commits; a missing user identity must not block the snapshot.
_STASH_IDENTITY = ("-c", "user.name=infra-audit", "-c", "user.email=infra-audit@localhost")


@dataclass
class GitWorkingTree:
    """Working-tree primitives implemented with the git CLI.

    The snapshot is a regular ``git stash`` entry. Its object id is kept so
    the restore step pops exactly that entry and nothing older.
    """
    root: Path
    _stash_id: str | None = field(default=None, init=False, repr=False)
    _empty_dirs: tuple[str, ...] = field(default=(), init=False, repr=False)

    def record_baseline(self) -> None:
        # git stores no directories, so empty untracked ones survive only if rebuilt.
        listing = self._check(
            ["ls-files", "--others", "--directory", "--exclude-standard", "-z"], "snapshot"
        )
        empty: list[str] = []
        for entry in listing.stdout.split("\0"):
            if not entry.endswith("/"):
                continue
            for current, dirs, files in os.walk(self.root / entry):
                if not dirs and not files:
                    empty.append(Path(current).relative_to(self.root).as_posix())
        self._empty_dirs = tuple(empty)

    def is_dirty(self) -> bool:
        if self._run(["diff", "--quiet"]).returncode != 0:
            return True
        if self._run(["diff", "--cached", "--quiet"]).returncode != 0:
            return True
        untracked = self._run(["ls-files", "--others", "--exclude-standard"])
        return bool(untracked.stdout.strip())

    def snapshot(self, label: str) -> None:
        before = self._stash_head()
        self._check([*_STASH_IDENTITY, "stash", "push", "--include-untracked", "--quiet", "-m", label], "snapshot")
        after = self._stash_head()
        if after is None or after == before:
            logger.info("nothing to snapshot")
            self._stash_id = None
            return
        self._stash_id = after
        logger.info("working tree snapshot stored as %s", after[:12])

    def discard_changes(self) -> None:
        if self._has_head():
            self._check(["reset", "--hard", "--quiet", "HEAD"], "restore")
        self._check(["clean", "-fd", "--quiet"], "restore")
        for rel in self._empty_dirs:
            try:
                (self.root / rel).mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise GuardError(f"restore failed: unable to recreate {rel}: {exc}") from exc

    def restore_snapshot(self) -> None:
        if self._stash_id is None:
            return
        if self._stash_head() != self._stash_id:
            raise GuardError(
                f"snapshot {self._stash_id[:12]} is no longer the top stash entry; "
                "refusing to restore a different one"
            )
        self._check(["stash", "pop", "--index", "--quiet"], "restore")
        logger.info("working tree snapshot %s re-applied", self._stash_id[:12])
        self._stash_id = None

    def config_value(self, key: str) -> str | None:
        proc = self._run(["config", "--get", key])
        value = proc.stdout.strip()
        if proc.returncode != 0 or not value:
            return None
        return value

    def has_hook(self, name: str) -> bool:
        proc = self._run(["rev-parse", "--git-path", f"hooks/{name}"])
        if proc.returncode != 0 or not proc.stdout.strip():
            return False
        path = Path(proc.stdout.strip())
        if not path.is_absolute():
            path = self.root / path
        return path.is_file()

    def _stash_head(self) -> str | None:
        proc = self._run(["rev-parse", "--quiet", "--verify", "refs/stash"])
        value = proc.stdout.strip()
        return value if proc.returncode == 0 and value else None

    def _has_head(self) -> bool:
        return self._run(["rev-parse", "--quiet", "--verify", "HEAD"]).returncode == 0

    def _check(self, args: list[str], step: str) -> subprocess.CompletedProcess[str]:
        proc = self._run(args)
        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout).strip()
            raise GuardError(f"{step} failed: git {' '.join(args)} exited {proc.returncode}: {detail}")
        return proc

    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(
                ["git", *args],
                cwd=str(self.root),
                env=_git_env(),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as exc:
            raise GuardError(f"unable to run git: {exc}") from exc


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    # Deterministic parsing: avoid localized output.
    env.setdefault("LANG", "C")
    env.setdefault("LC_ALL", "C")
    return env
