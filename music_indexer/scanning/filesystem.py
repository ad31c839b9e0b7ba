import os
import logging
from pathlib import Path
from typing import Iterator, List

from ..models import FileCandidate

class DirectoryWalker:
    """
    Enumerates every regular file under a root, depth-first.

    Each call walks the live filesystem again; nothing is cached between
    calls, so the counting pass and the pipeline pass may disagree.
    Directory symlinks are followed and cycles are not detected.
    """

    def iter_candidates(self, root: Path) -> Iterator[FileCandidate]:
        """Yields a FileCandidate per regular file, stat captured once."""
        for entry in self._iter_entries(root):
            try:
                st = entry.stat()
            except OSError as e:
                # Vanished between listing and stat
                logging.warning(f"Cannot stat {entry.path}: {e}")
                continue
            yield FileCandidate(
                path=Path(entry.path),
                size_bytes=st.st_size,
                modified=st.st_mtime,
                created=getattr(st, "st_birthtime", st.st_ctime),
            )

    def iter_batches(self, root: Path, width: int) -> Iterator[List[FileCandidate]]:
        """Groups candidates into lists of at most `width`."""
        batch: List[FileCandidate] = []
        for candidate in self.iter_candidates(root):
            batch.append(candidate)
            if len(batch) >= width:
                yield batch
                batch = []
        if batch:
            yield batch

    def count_files(self, root: Path) -> int:
        """Counts regular files without stat'ing them. Used for progress totals."""
        return sum(1 for _ in self._iter_entries(root))

    def _iter_entries(self, root: Path) -> Iterator[os.DirEntry]:
        """Depth-first walker using os.scandir for speed."""
        stack = [root]
        while stack:
            current = stack.pop()

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                logging.warning(f"Skipping unreadable directory {current}: {e}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                try:
                    if e.is_dir():
                        dirs.append(Path(e.path))
                    elif e.is_file():
                        files.append(e)
                except OSError as err:
                    logging.warning(f"Cannot inspect {e.path}: {err}")

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

            for f in files:
                yield f
