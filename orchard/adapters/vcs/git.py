"""
Git importer — checkout and update of git packages.

Uses the git CLI — never raw API calls. The remote is always called
``origin``. The import target is, in order of precedence, the pinned
``commit``, the pinned ``tag``, the ``branch`` on origin, or origin's
default branch.

Reset modes on update:
    none  — fast-forward only, local commits are kept
    soft  — move to the target, refusing to lose local commits
    force — move to the target whatever it costs
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from orchard.adapters.base import ImportContext, Importer
from orchard.core.errors import ImporterError
from orchard.core.models.import_result import VCSStatus
from orchard.core.models.package import VCSDefinition

logger = logging.getLogger(__name__)


class GitImporter(Importer):
    """Git checkouts through the git CLI.

    VCS options:
        timeout (int): seconds allowed per git call (default: 600).
    """

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    def is_checked_out(self) -> bool:
        return (self.importdir / ".git").exists()

    @property
    def timeout(self) -> int:
        return int(self.vcs.options.get("timeout", 600))

    # ── Operations ──────────────────────────────────────────────

    def fetch(self, context: ImportContext) -> None:
        self._check_cancelled(context)
        if context.options.only_local:
            raise ImporterError(
                f"{self.package.name} is not checked out and only local operations are allowed",
                retryable=False,
            )
        if not self.vcs.url:
            raise ImporterError(f"{self.package.name}: no git URL", retryable=False)

        self.importdir.parent.mkdir(parents=True, exist_ok=True)
        args = ["clone", "--quiet"]
        if self.vcs.branch and not (self.vcs.commit or self.vcs.tag):
            args += ["--branch", self.vcs.branch]
        self._git([*args, self.vcs.url, str(self.importdir)], cwd=self.importdir.parent, retryable=True)

        if self.vcs.commit or self.vcs.tag:
            self._git(["checkout", "--quiet", self._target_ref()], cwd=self.importdir)
        logger.debug("cloned %s into %s", self.vcs.url, self.importdir)

    def update(self, context: ImportContext) -> VCSStatus:
        self._check_cancelled(context)
        status = self.status(context)
        target = self._target_ref()
        reset = context.options.reset
        cwd = self.importdir

        if reset == "force":
            if status.status != "up_to_date" or status.uncommitted:
                self._git(["reset", "--quiet", "--hard", target], cwd=cwd)
            return status

        if status.status == "up_to_date":
            return status
        if status.status == "behind":
            if reset == "soft":
                self._git(["reset", "--quiet", "--keep", target], cwd=cwd)
            else:
                self._git(["merge", "--quiet", "--ff-only", target], cwd=cwd)
            return status
        if status.status == "ahead" and reset == "none":
            return status

        raise ImporterError(
            f"{self.package.name}: the checkout has {len(status.local_commits)} local commit(s) "
            f"that {target} does not have; refusing to discard them "
            "(use a forced reset to override)",
            retryable=False,
        )

    def status(self, context: ImportContext) -> VCSStatus:
        cwd = self.importdir
        if not self.is_checked_out():
            return VCSStatus(status="needs_checkout")
        if not context.options.only_local:
            self._fetch_remote(context)

        head = self._git(["rev-parse", "HEAD"], cwd=cwd).strip()
        branch = self._git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd).strip()
        uncommitted = bool(self._git(["status", "--porcelain", "--untracked-files=no"], cwd=cwd).strip())
        target = self._target_ref()
        local = self._rev_list(f"{target}..HEAD")
        remote = self._rev_list(f"HEAD..{target}")

        if local and remote:
            state = "diverged"
        elif local:
            state = "ahead"
        elif remote:
            state = "behind"
        else:
            state = "up_to_date"
        return VCSStatus(
            status=state,
            local_commits=local,
            remote_commits=remote,
            uncommitted=uncommitted,
            branch=None if branch == "HEAD" else branch,
            head=head,
        )

    def snapshot(self, context: ImportContext) -> dict[str, str]:
        cwd = self.importdir
        info = {"type": "git", "url": self.vcs.url}
        info["commit"] = self._git(["rev-parse", "HEAD"], cwd=cwd).strip()
        if self.vcs.tag:
            info["tag"] = self.vcs.tag
        branch = self._git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd).strip()
        if branch != "HEAD":
            info["branch"] = branch
        elif self.vcs.branch:
            info["branch"] = self.vcs.branch
        return info

    def relocate(self, vcs: VCSDefinition) -> None:
        super().relocate(vcs)
        if self.is_checked_out() and vcs.url:
            self._git(["remote", "set-url", "origin", vcs.url], cwd=self.importdir)

    # ── Helpers ─────────────────────────────────────────────────

    def _target_ref(self) -> str:
        if self.vcs.commit:
            return self.vcs.commit
        if self.vcs.tag:
            return f"refs/tags/{self.vcs.tag}"
        if self.vcs.branch:
            return f"refs/remotes/origin/{self.vcs.branch}"
        return "refs/remotes/origin/HEAD"

    def _fetch_remote(self, context: ImportContext) -> None:
        self._check_cancelled(context)
        if self.vcs.url:
            current = self._git(["remote", "get-url", "origin"], cwd=self.importdir).strip()
            if current != self.vcs.url:
                self._git(["remote", "set-url", "origin", self.vcs.url], cwd=self.importdir)
        self._git(["fetch", "--quiet", "--tags", "origin"], cwd=self.importdir, retryable=True)
        if not self.vcs.branch and not (self.vcs.commit or self.vcs.tag):
            self._git(["remote", "set-head", "origin", "--auto"], cwd=self.importdir, retryable=True)

    def _rev_list(self, spec: str) -> list[str]:
        out = self._git(["rev-list", spec], cwd=self.importdir)
        return out.split()

    def _check_cancelled(self, context: ImportContext) -> None:
        if context.cancelled:
            raise ImporterError(f"{self.package.name}: import cancelled", retryable=False)

    def _git(self, args: list[str], cwd: Path, retryable: bool = False) -> str:
        """Run a git command and return stdout."""
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ImporterError(f"git {args[0]} timed out after {e.timeout}s", retryable=True) from e
        except OSError as e:
            raise ImporterError(f"git {args[0]} failed: {e}", retryable=False) from e
        if result.returncode != 0:
            raise ImporterError(
                f"{self.package.name}: git {args[0]} failed: "
                f"{result.stderr.strip() or f'exit code {result.returncode}'}",
                retryable=retryable,
            )
        return result.stdout
