"""
Corpus walker for ingestion.

Walks a source tree and yields one :class:`Document` per readable UTF-8 file,
skipping build output, VCS internals, lock files and generated sources that add
noise but little retrieval value.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional

from ..config import (
    DEFAULT_GENERATED_MARKERS,
    DEFAULT_IGNORED_DIRS,
    DEFAULT_IGNORED_FILES,
)

logger = logging.getLogger(__name__)

SOURCE_TAG = "codebase"
FALLBACK_LANGUAGE = "text"

LANGUAGES: Dict[str, str] = {
    "rs": "rust",
    "py": "python",
    "js": "javascript",
    "ts": "typescript",
    "go": "go",
    "java": "java",
    "c": "c",
    "cpp": "cpp",
    "h": "c++",
    "md": "markdown",
    "toml": "toml",
    "json": "json",
    "sql": "sql",
}


def _extension(path: str) -> str:
    return os.path.splitext(os.path.basename(path))[1].lstrip(".")


def language_for(path: str) -> str:
    return LANGUAGES.get(_extension(path), FALLBACK_LANGUAGE)


def build_metadata(path: str) -> Dict[str, str]:
    return {
        "source": SOURCE_TAG,
        "language": language_for(path),
        "path": path,
    }


@dataclass
class Document:
    id: str
    text: str

    @property
    def language(self) -> str:
        return language_for(self.id)

    @property
    def source(self) -> str:
        return SOURCE_TAG

    @property
    def metadata(self) -> Dict[str, str]:
        return build_metadata(self.id)


class CorpusWalker:
    """Yields documents from a directory tree in name-sorted walk order."""

    def __init__(
        self,
        root: Path | str,
        ignored_dirs: Optional[Iterable[str]] = None,
        ignored_files: Optional[Iterable[str]] = None,
        generated_markers: Optional[Iterable[str]] = None,
    ):
        self.root = str(root)
        self.ignored_dirs = list(DEFAULT_IGNORED_DIRS if ignored_dirs is None else ignored_dirs)
        self.ignored_files = set(
            DEFAULT_IGNORED_FILES if ignored_files is None else ignored_files
        )
        self.generated_markers = list(
            DEFAULT_GENERATED_MARKERS if generated_markers is None else generated_markers
        )

    def _in_ignored_dir(self, path: str) -> bool:
        return any(fragment in path for fragment in self.ignored_dirs)

    def is_excluded_path(self, path: str) -> bool:
        if self._in_ignored_dir(path):
            return True
        return os.path.basename(path) in self.ignored_files

    def is_generated(self, path: str, content: str) -> bool:
        if _extension(path) != "rs":
            return False
        return any(marker in content for marker in self.generated_markers)

    def _read(self, path: str) -> Optional[str]:
        try:
            return Path(path).read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            # Binary or unreadable; not worth surfacing.
            logger.debug("Skipping %s: %s", path, exc)
            return None

    def walk(self) -> Iterator[Document]:
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(
                name
                for name in dirnames
                if not self._in_ignored_dir(os.path.join(dirpath, name) + "/")
            )
            for name in sorted(filenames):
                path = os.path.join(dirpath, name)
                if self.is_excluded_path(path):
                    continue
                if os.path.islink(path) or not os.path.isfile(path):
                    continue
                content = self._read(path)
                if content is None:
                    continue
                if self.is_generated(path, content):
                    logger.debug("Skipping generated source %s", path)
                    continue
                yield Document(id=path, text=content)

    def __iter__(self) -> Iterator[Document]:
        return self.walk()


def walk_documents(
    root: Path | str,
    ignored_dirs: Optional[Iterable[str]] = None,
    ignored_files: Optional[Iterable[str]] = None,
    generated_markers: Optional[Iterable[str]] = None,
) -> Iterator[Document]:
    return CorpusWalker(root, ignored_dirs, ignored_files, generated_markers).walk()
