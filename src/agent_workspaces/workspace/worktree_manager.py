"""Git worktree manager for isolated agent workspaces.

Each agent gets its own detached worktree under a shared root, so agents can
edit files concurrently without touching each other's checkout. Git's own
worktree registry is the source of truth for what exists; the manager only
keeps per-agent locks so concurrent calls for the same agent serialize.
"""

import logging
import shutil
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from ..errors import (
    ErrorTranslator,
    ReferenceNotFoundError,
    WorkspaceCleanupError,
    WorkspaceCreateError,
    WorkspaceShutdownError,
    WorkspaceValidationError,
    WorktreeCollisionError,
)
from ..utils.subprocess_utils import SubprocessError
from ..utils.validators import sanitize_path_component, validate_agent_id, validate_base_ref
from .git_adapter import WorktreeBackend, WorktreeEntry
from .stats import WorkspaceStatsAggregator, is_within

logger = logging.getLogger(__name__)

DEFAULT_BASE_REF = "main"


class WorkspaceStatus(str, Enum):
    """Outcome of a lifecycle operation. None of these are errors."""
    CREATED = "created"
    EXISTS = "exists"
    CLEANED = "cleaned"
    NOT_FOUND = "not_found"


@dataclass
class WorkspaceResult:
    """Structured, serializable result of create/cleanup."""
    status: WorkspaceStatus
    agent_id: str
    workspace_path: str
    base_ref: Optional[str] = None
    commit: Optional[str] = None
    branch: Optional[str] = None
    created_at: Optional[str] = None
    force: Optional[bool] = None

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization, dropping unset fields."""
        data = {
            "status": self.status.value,
            "agent_id": self.agent_id,
            "workspace_path": self.workspace_path,
            "base_ref": self.base_ref,
            "commit": self.commit,
            "branch": self.branch,
            "created_at": self.created_at,
            "force": self.force,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class WorkspaceManagerConfig:
    """Everything the manager needs: where workspaces live and which repository backs them."""
    workspaces_dir: Union[Path, str]
    vcs: WorktreeBackend = field(repr=False)

    def __post_init__(self):
        """Validate eagerly and normalize the root path."""
        if isinstance(self.workspaces_dir, str):
            if not self.workspaces_dir.strip():
                raise ValueError("workspaces_dir cannot be empty")
            self.workspaces_dir = Path(self.workspaces_dir)
        self.workspaces_dir = self.workspaces_dir.expanduser().resolve()
        if self.vcs is None:
            raise ValueError("A version-control backend is required")


class _KeyedLocks:
    """One mutex per key, created on demand and dropped when nobody holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._slots: Dict[str, List] = {}  # key -> [lock, holders_and_waiters]

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            slot = self._slots.setdefault(key, [threading.Lock(), 0])
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._slots[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)


class WorkspaceManager:
    """Creates, removes, and reports on per-agent git worktrees."""

    def __init__(self, config: WorkspaceManagerConfig):
        """
        Initialize workspace manager.

        Args:
            config: Workspaces root and version-control backend
        """
        self.config = config
        self.workspaces_dir: Path = config.workspaces_dir
        self.vcs = config.vcs
        self.stats = WorkspaceStatsAggregator(self.workspaces_dir, self.vcs)
        self._translator = ErrorTranslator()
        self._id_locks = _KeyedLocks()

        # Drain bookkeeping for shutdown()
        self._drain = threading.Condition()
        self._in_flight = 0
        self._closing = False

    # -- paths -------------------------------------------------------------

    def _resolve_path(self, agent_id: str) -> Tuple[str, Path]:
        sanitized_id = sanitize_path_component(agent_id)
        workspace_path = self.workspaces_dir / sanitized_id
        # Lexical check; symlinks at the target are handled by create/cleanup
        if workspace_path.parent != self.workspaces_dir:
            raise WorkspaceValidationError(
                f"Workspace path for agent '{agent_id}' escapes {self.workspaces_dir}"
            )
        return sanitized_id, workspace_path

    def workspace_path_for(self, agent_id: str) -> Path:
        """Path the agent's workspace lives (or would live) at."""
        return self._resolve_path(validate_agent_id(agent_id))[1]

    def _registered_entry(self, path: Path) -> Optional[WorktreeEntry]:
        """Git's record for the worktree at path, or None (also when git is unavailable).

        The final path component is never resolved, so a symlink at path cannot
        borrow the record of the worktree it points to.
        """
        if path.is_symlink():
            return None
        try:
            entries = self.vcs.list_worktrees()
        except (SubprocessError, OSError) as e:
            logger.warning(f"Could not list worktrees: {e}")
            return None
        for entry in entries:
            entry_path = Path(entry.path)
            if entry_path.parent.resolve() / entry_path.name == path:
                return entry
        return None

    def get_workspace(self, agent_id: str) -> Optional[WorktreeEntry]:
        """Git's record of the agent's worktree, or None if it has none."""
        return self._registered_entry(self.workspace_path_for(agent_id))

    # -- in-flight tracking ------------------------------------------------

    @contextmanager
    def _operation(self, name: str, reject_when_closing: bool = False):
        with self._drain:
            if self._closing and reject_when_closing:
                raise WorkspaceShutdownError(
                    f"Workspace manager is shutting down; refusing {name}"
                )
            self._in_flight += 1
        try:
            yield
        finally:
            with self._drain:
                self._in_flight -= 1
                if self._in_flight == 0:
                    self._drain.notify_all()

    @property
    def in_flight(self) -> int:
        with self._drain:
            return self._in_flight

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Stop accepting new workspaces and wait for in-flight operations.

        cleanup() and get_stats() stay available so callers can still tear
        down what they own.

        Returns:
            True if every in-flight operation finished within timeout
        """
        with self._drain:
            self._closing = True
            drained = self._drain.wait_for(lambda: self._in_flight == 0, timeout=timeout)
        if drained:
            logger.info("Workspace manager drained")
        else:
            logger.warning(f"Workspace manager shutdown timed out with {self.in_flight} operations in flight")
        return drained

    # -- create ------------------------------------------------------------

    def create(self, agent_id: str, base_ref: str = DEFAULT_BASE_REF) -> WorkspaceResult:
        """
        Create an isolated worktree for an agent.

        Args:
            agent_id: Agent identifier (any string; sanitized for the path)
            base_ref: Branch, tag, or commit to check out

        Returns:
            CREATED result, or EXISTS if the agent already has a workspace

        Raises:
            WorkspaceValidationError: If inputs are empty or malformed
            ReferenceNotFoundError: If base_ref does not resolve
            WorkspaceCreateError: If git fails for any other reason
            WorkspaceShutdownError: If shutdown() has been called
        """
        agent_id = validate_agent_id(agent_id)
        base_ref = validate_base_ref(base_ref)
        sanitized_id, workspace_path = self._resolve_path(agent_id)
        log_extra = {"agent_id": agent_id}

        with self._operation("create", reject_when_closing=True), self._id_locks.hold(sanitized_id):
            logger.info(f"Creating workspace {workspace_path} from {base_ref}", extra=log_extra)

            if not self.vcs.is_repository():
                raise WorkspaceCreateError(
                    "Not in a git repository or git is not available",
                    context={"agent_id": agent_id},
                )

            if workspace_path.is_symlink():
                if not is_within(workspace_path, self.workspaces_dir):
                    raise WorkspaceValidationError(
                        f"Workspace path for agent '{agent_id}' is a symlink that escapes {self.workspaces_dir}"
                    )
                logger.warning(f"Workspace path is a symlink, not a worktree: {workspace_path}", extra=log_extra)
                return self._exists_result(agent_id, workspace_path, base_ref, None)

            existing = self._registered_entry(workspace_path)
            if existing is not None and not workspace_path.exists():
                self._prune_stale_entry(workspace_path, existing, agent_id, base_ref)
                existing = None

            if existing is not None or workspace_path.exists():
                logger.warning(f"Workspace already exists: {workspace_path}", extra=log_extra)
                return self._exists_result(agent_id, workspace_path, base_ref, existing)

            try:
                commit = self.vcs.resolve_ref(base_ref)
            except SubprocessError as e:
                raise self._create_error(agent_id, base_ref, e) from e
            if commit is None:
                logger.error(f"Base reference not found: {base_ref}", extra=log_extra)
                raise ReferenceNotFoundError(base_ref, context={"agent_id": agent_id})

            try:
                self.workspaces_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise self._create_error(agent_id, base_ref, e) from e

            try:
                entry = self.vcs.add_worktree(workspace_path, base_ref)
            except WorktreeCollisionError:
                # Another process created it between our check and git's
                logger.warning(f"Workspace appeared concurrently: {workspace_path}", extra=log_extra)
                return self._exists_result(
                    agent_id, workspace_path, base_ref, self._registered_entry(workspace_path)
                )
            except ReferenceNotFoundError:
                logger.error(f"Base reference vanished before checkout: {base_ref}", extra=log_extra)
                raise
            except (SubprocessError, OSError) as e:
                self._discard_partial(workspace_path, log_extra)
                raise self._create_error(agent_id, base_ref, e) from e

            created_at = datetime.now(timezone.utc).isoformat()
            logger.info(
                f"Created worktree {workspace_path} at {(entry.commit or '')[:12]} from {base_ref}",
                extra=log_extra,
            )
            return WorkspaceResult(
                status=WorkspaceStatus.CREATED,
                agent_id=agent_id,
                workspace_path=str(workspace_path),
                base_ref=base_ref,
                commit=entry.commit,
                branch=entry.branch,
                created_at=created_at,
            )

    def _exists_result(
        self,
        agent_id: str,
        workspace_path: Path,
        base_ref: str,
        entry: Optional[WorktreeEntry],
    ) -> WorkspaceResult:
        return WorkspaceResult(
            status=WorkspaceStatus.EXISTS,
            agent_id=agent_id,
            workspace_path=str(workspace_path),
            base_ref=base_ref,
            commit=entry.commit if entry else None,
            branch=entry.branch if entry else None,
        )

    def _create_error(self, agent_id: str, base_ref: str, error: Exception) -> WorkspaceCreateError:
        friendly = self._translator.translate(error)
        logger.error(f"Failed to create workspace: {error}", extra={"agent_id": agent_id})
        return WorkspaceCreateError(
            f"Workspace creation failed: {friendly.summary()}",
            context={
                "agent_id": agent_id,
                "base_ref": base_ref,
                "detail": getattr(error, "stderr", "") or str(error),
            },
            retryable=isinstance(error, SubprocessError) and error.timed_out,
        )

    def _prune_stale_entry(
        self,
        workspace_path: Path,
        entry: WorktreeEntry,
        agent_id: str,
        base_ref: str,
    ) -> None:
        """Drop the record of a worktree whose directory was deleted behind git's back."""
        if entry.locked:
            raise WorkspaceCreateError(
                f"Worktree {workspace_path} is registered and locked but its directory is missing; "
                f"run cleanup with force first",
                context={"agent_id": agent_id},
            )
        logger.warning(
            f"Pruning stale worktree record for missing directory {workspace_path}",
            extra={"agent_id": agent_id},
        )
        try:
            self.vcs.prune()
        except SubprocessError as e:
            raise self._create_error(agent_id, base_ref, e) from e

    def _discard_partial(self, workspace_path: Path, log_extra: Dict) -> None:
        """Remove whatever a failed checkout left behind so the agent can retry."""
        if self._registered_entry(workspace_path) is None and not workspace_path.exists():
            return
        logger.info(f"Removing partially created workspace {workspace_path}", extra=log_extra)
        try:
            self.vcs.remove_worktree(workspace_path, force=True)
        except SubprocessError as e:
            logger.debug(f"git worktree remove failed during rollback: {e.stderr.strip()}")
        try:
            self._remove_directory(workspace_path)
        except WorkspaceCleanupError as e:
            logger.warning(f"Rollback left files behind at {workspace_path}: {e}", extra=log_extra)

    # -- cleanup -----------------------------------------------------------

    def cleanup(self, agent_id: str, force: bool = False) -> WorkspaceResult:
        """
        Remove an agent's worktree.

        Args:
            agent_id: Agent identifier
            force: Remove even with uncommitted changes or an administrative lock

        Returns:
            CLEANED result, or NOT_FOUND if the agent has no workspace

        Raises:
            WorkspaceValidationError: If agent_id is empty
            WorkspaceCleanupError: If removal fails and force did not resolve it
        """
        agent_id = validate_agent_id(agent_id)
        sanitized_id, workspace_path = self._resolve_path(agent_id)
        log_extra = {"agent_id": agent_id}

        with self._operation("cleanup"), self._id_locks.hold(sanitized_id):
            logger.info(f"Cleaning up workspace {workspace_path} (force={force})", extra=log_extra)

            if workspace_path.is_symlink():
                # Never hand a symlink to git; it would act on the target's worktree
                if not force:
                    raise WorkspaceCleanupError(
                        f"{workspace_path} is a symlink, not a worktree; use force to unlink it",
                        context={"agent_id": agent_id},
                    )
                logger.warning(f"Unlinking symlink at workspace path: {workspace_path}", extra=log_extra)
                self._remove_directory(workspace_path)
                return WorkspaceResult(
                    status=WorkspaceStatus.CLEANED,
                    agent_id=agent_id,
                    workspace_path=str(workspace_path),
                    force=force,
                )

            entry = self._registered_entry(workspace_path)
            on_disk = workspace_path.exists()

            if entry is not None and entry.main:
                raise WorkspaceCleanupError(
                    f"{workspace_path} is the repository's main worktree and cannot be removed",
                    context={"agent_id": agent_id},
                )

            if entry is None and not on_disk:
                logger.warning(f"Workspace does not exist: {workspace_path}", extra=log_extra)
                return WorkspaceResult(
                    status=WorkspaceStatus.NOT_FOUND,
                    agent_id=agent_id,
                    workspace_path=str(workspace_path),
                )

            if entry is not None and not on_disk:
                # Directory deleted externally; only git's bookkeeping remains
                self._forget_worktree(workspace_path, entry, force, agent_id)
            elif entry is None:
                if not force:
                    raise WorkspaceCleanupError(
                        f"{workspace_path} is not a registered worktree; "
                        f"use force to delete the directory",
                        context={"agent_id": agent_id},
                    )
                logger.warning(f"Removing unregistered workspace directory: {workspace_path}", extra=log_extra)
                self._remove_directory(workspace_path)
            else:
                self._remove_worktree(workspace_path, force, agent_id)

            logger.info(f"Cleaned up workspace: {workspace_path}", extra=log_extra)
            return WorkspaceResult(
                status=WorkspaceStatus.CLEANED,
                agent_id=agent_id,
                workspace_path=str(workspace_path),
                force=force,
            )

    def _remove_worktree(self, workspace_path: Path, force: bool, agent_id: str) -> None:
        try:
            self.vcs.remove_worktree(workspace_path, force=force)
            return
        except SubprocessError as e:
            error = e

        if not workspace_path.exists() and self._registered_entry(workspace_path) is None:
            # Removed by someone else between our check and git's
            return

        if not force:
            friendly = self._translator.translate(error)
            logger.error(f"Failed to remove worktree: {error.stderr.strip()}", extra={"agent_id": agent_id})
            raise WorkspaceCleanupError(
                f"Failed to remove worktree: {friendly.summary()}",
                context={"agent_id": agent_id, "detail": error.stderr},
            ) from error

        logger.warning(
            f"git worktree remove failed, attempting manual cleanup: {error.stderr.strip()}",
            extra={"agent_id": agent_id},
        )
        self._remove_directory(workspace_path)

    def _forget_worktree(
        self,
        workspace_path: Path,
        entry: WorktreeEntry,
        force: bool,
        agent_id: str,
    ) -> None:
        """Drop git's record of a worktree whose directory is already gone."""
        if entry.locked:
            if not force:
                raise WorkspaceCleanupError(
                    f"Worktree {workspace_path} is locked; use force to remove it",
                    context={"agent_id": agent_id},
                )
            try:
                self.vcs.unlock_worktree(workspace_path)
            except SubprocessError as e:
                raise WorkspaceCleanupError(
                    f"Failed to unlock worktree {workspace_path}: {e.stderr.strip()}",
                    context={"agent_id": agent_id},
                ) from e
        try:
            self.vcs.prune()
        except SubprocessError as e:
            raise WorkspaceCleanupError(
                f"Failed to prune worktree records: {e.stderr.strip()}",
                context={"agent_id": agent_id},
            ) from e

    def _remove_directory(self, workspace_path: Path) -> None:
        """Delete the directory (or unlink a symlink) by hand, then let git forget it."""
        try:
            if workspace_path.is_symlink():
                workspace_path.unlink()
            elif workspace_path.exists():
                try:
                    self.vcs.unlock_worktree(workspace_path)
                except SubprocessError:
                    pass  # Not locked, or not registered at all
                shutil.rmtree(workspace_path)
                logger.info(f"Manually removed workspace directory: {workspace_path}")
        except OSError as e:
            raise WorkspaceCleanupError(
                f"Failed to delete {workspace_path}: {e}",
                context={"path": str(workspace_path)},
            ) from e

        try:
            self.vcs.prune()
        except SubprocessError as e:
            logger.warning(f"git worktree prune failed: {e.stderr.strip()}")

    # -- reporting ---------------------------------------------------------

    def get_stats(self) -> Dict:
        """Counts, disk usage, and worktrees under the workspaces root."""
        with self._operation("get_stats"):
            return self.stats.get_stats()

    def list_all(self) -> Dict:
        """Summary plus every managed worktree and local workspace directory."""
        with self._operation("list_all"):
            return self.stats.list_all()
