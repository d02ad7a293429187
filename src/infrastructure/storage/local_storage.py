"""Local filesystem operations used by a run."""

import zipfile
from pathlib import Path
from typing import Iterable, List

from tqdm import tqdm

from domain.exceptions import LocalEnvironmentError
from shared.logging import get_logger
from shared.types import PathLike

logger = get_logger(__name__)


class LocalStorage:
    """
    Directory, archive and input-file helpers.
    Implements ILocalStorage protocol.
    """

    def __init__(self, show_progress: bool = True):
        self.show_progress = show_progress

    def ensure_directory(self, path: PathLike) -> Path:
        """Create ``path`` and its parents if needed."""
        path = Path(path)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LocalEnvironmentError(f"Cannot create directory {path}: {e}") from e
        return path

    def is_empty_directory(self, path: PathLike) -> bool:
        """True if ``path`` is an existing directory without entries."""
        path = Path(path)
        if not path.is_dir():
            return False
        try:
            return next(path.iterdir(), None) is None
        except OSError as e:
            raise LocalEnvironmentError(f"Cannot read directory {path}: {e}") from e

    def remove_if_empty(self, path: PathLike) -> bool:
        """
        Remove ``path`` if it is an empty directory.

        Safe to call repeatedly; returns True only when something was removed.
        """
        path = Path(path)
        if not self.is_empty_directory(path):
            return False
        try:
            path.rmdir()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise LocalEnvironmentError(f"Cannot remove directory {path}: {e}") from e
        logger.debug(f"Removed empty directory {path}")
        return True

    def extract_archive(self, archive: PathLike, destination: PathLike) -> List[Path]:
        """
        Extract a zip archive into ``destination``.

        Entries that would land outside ``destination`` are rejected.
        """
        archive = Path(archive)
        destination = self.ensure_directory(destination)
        root = destination.resolve()
        extracted: List[Path] = []

        try:
            with zipfile.ZipFile(archive) as zf:
                members = zf.infolist()
                for member in tqdm(members, unit='file', desc='Extracting',
                                   disable=not self.show_progress or not members):
                    target = (destination / member.filename).resolve()
                    if target != root and root not in target.parents:
                        raise LocalEnvironmentError(
                            f"Illegal file path in archive: {member.filename}"
                        )
                    zf.extract(member, destination)
                    extracted.append(target)
        except zipfile.BadZipFile as e:
            raise LocalEnvironmentError(f"Invalid archive {archive}: {e}") from e
        except OSError as e:
            raise LocalEnvironmentError(f"Cannot extract {archive}: {e}") from e

        logger.info(f"Extracted {len(extracted)} entries to {destination}")
        return extracted

    def remove_file(self, path: PathLike) -> None:
        """Delete a file."""
        path = Path(path)
        try:
            path.unlink()
        except OSError as e:
            raise LocalEnvironmentError(f"Cannot remove {path}: {e}") from e

    def collect_input_files(self, paths: Iterable[PathLike]) -> List[Path]:
        """
        Expand input arguments into image files.

        Files are kept as given; directories contribute their direct file
        children in name order. Anything else is ignored.
        """
        files: List[Path] = []
        for raw in paths:
            path = Path(raw)
            if path.is_dir():
                files.extend(sorted(p for p in path.iterdir() if p.is_file()))
            elif path.is_file():
                files.append(path)
            else:
                logger.debug(f"Skipping {path}: not a file or directory")
        return files
