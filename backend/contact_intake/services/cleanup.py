"""
Cleanup coordinator.

Every upload created during a submission attempt is tracked here and released
exactly once when the attempt ends, whatever the outcome: sent, rejected,
failed dispatch, unexpected exception or client disconnect.

Releasing normally deletes the file. When an archive directory is configured
and the attempt was marked as delivered, the file is moved there instead so
a static file server can offer it for playback.

Release failures are logged and swallowed: they must never replace the
primary outcome of the submission.
"""

import logging
import shutil
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

from contact_intake.models.submission import UploadHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CleanupCoordinator:
    """Scoped owner of the uploads created during one submission attempt."""

    def __init__(self, archive_dir: Optional[str] = None):
        self.archive_dir = Path(archive_dir) if archive_dir else None
        self._tracked: List[UploadHandle] = []
        self._archive = False

    def __enter__(self) -> "CleanupCoordinator":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release_all()
        return False

    async def run(self, attempt: Callable[["CleanupCoordinator"], Awaitable[T]]) -> T:
        """Await attempt(self) and release every tracked upload afterwards."""
        with self:
            return await attempt(self)

    @property
    def tracked(self) -> List[UploadHandle]:
        return list(self._tracked)

    def track(self, handle: Optional[UploadHandle]) -> Optional[UploadHandle]:
        if handle is not None and handle not in self._tracked:
            self._tracked.append(handle)
        return handle

    def archive_on_release(self) -> None:
        """Keep tracked uploads in the archive directory instead of deleting them."""
        if self.archive_dir is not None:
            self._archive = True

    def release(self, handle: UploadHandle) -> None:
        """Delete (or archive) one upload. A second call is a no-op."""
        if handle.released:
            return
        handle.mark_released()

        path = Path(handle.path)
        try:
            if self._archive and self.archive_dir is not None:
                self.archive_dir.mkdir(parents=True, exist_ok=True)
                target = self.archive_dir / handle.key
                shutil.move(str(path), str(target))
                handle.path = str(target)
                logger.info(f"Archived upload {handle.key}")
            else:
                path.unlink(missing_ok=True)
                logger.info(f"Deleted upload {handle.key}")
        except OSError as e:
            logger.warning(f"Failed to release upload {handle.key}: {e}")

    def release_all(self) -> None:
        for handle in self._tracked:
            self.release(handle)
