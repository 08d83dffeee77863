# storage/file_manager.py
"""Utility class for reading inputs and publishing output artifacts."""

from __future__ import annotations

import asyncio
import os
import tempfile

import structlog
from config import settings
from core.errors import WriteError

logger = structlog.get_logger(__name__)


class FileManager:
    """Handle reading the sources and writing the two output files."""

    def __init__(
        self,
        output_file: str = settings.OUTPUT_FILE,
        localisation_output_file: str = settings.LOCALISATION_OUTPUT_FILE,
    ) -> None:
        self.output_file = output_file
        self.localisation_output_file = localisation_output_file

    async def read_text(self, file_path: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_text_sync, file_path)

    def _read_text_sync(self, file_path: str) -> str:
        """Read the contents of ``file_path`` synchronously.

        Args:
            file_path: Path to the file to read.

        Returns:
            The full text of the file.
        """

        with open(file_path, encoding="utf-8-sig") as f:
            return f.read()

    def _stage(self, file_path: str, text: str) -> str:
        """Write ``text`` to a temp file beside ``file_path`` and return its path."""
        if os.path.isdir(file_path):
            raise WriteError(file_path, "path is a directory")
        directory = os.path.dirname(os.path.abspath(file_path))
        tmp_path: str | None = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{os.path.basename(file_path)}.", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
        except OSError as exc:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise WriteError(file_path, str(exc)) from exc
        return tmp_path

    def write_text_atomic(self, file_path: str, text: str) -> None:
        """Write ``text`` next to ``file_path`` and rename it into place.

        Raises:
            WriteError: if the file could not be written.
        """
        self._publish_all([(file_path, text)])

    def _publish_all(self, artifacts: list[tuple[str, str]]) -> None:
        """Stage every artifact before renaming any of them into place.

        The localisation file is passed last and renamed first, so a failure
        between the renames never leaves a name list whose keys have no
        localisation.
        """
        staged: list[tuple[str, str]] = []
        try:
            for file_path, text in artifacts:
                staged.append((file_path, self._stage(file_path, text)))
            for file_path, tmp_path in reversed(staged):
                try:
                    os.replace(tmp_path, file_path)
                except OSError as exc:
                    raise WriteError(file_path, str(exc)) from exc
        finally:
            for _, tmp_path in staged:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)

    async def write_outputs(self, namelist_text: str, localisation_text: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            self._publish_all,
            [
                (self.output_file, namelist_text),
                (self.localisation_output_file, localisation_text),
            ],
        )
        logger.info(
            "Wrote name list outputs.",
            namelist=self.output_file,
            localisation=self.localisation_output_file,
        )
