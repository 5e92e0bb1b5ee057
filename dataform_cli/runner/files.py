"""
Working directory staging for task runners.

Handles:
- input files (inline content or file:// references)
- namespace files (glob selection from a host directory)
- declared output files (copied out before the working directory is removed)
"""

import fnmatch
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from dataform_cli.core.config import Settings
from dataform_cli.core.logger import setup_logger

logger = setup_logger(__name__, include_location=True)

FILE_REFERENCE_PREFIX = "file://"


@dataclass(frozen=True)
class FileReference:
    """Host file copied into the working directory instead of inline content."""
    path: str


InputFile = Union[str, FileReference]


class NamespaceFiles(BaseModel):
    """Glob selection of host namespace files to stage in the working directory."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    enabled: bool = True
    include: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)
    source: Optional[str] = None


def check_relative_path(name: str) -> str:
    """
    Validate a staged file name: relative, no '..' segments.

    Returns the normalized POSIX form.
    """
    if not name or not name.strip():
        raise ValueError("file path must not be empty")
    path = PurePosixPath(name.strip().replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts:
        raise ValueError(f"file path must stay inside the working directory: {name}")
    return str(path)


def create_working_dir(settings: Settings) -> Path:
    root = settings.working_dir_root
    if root:
        Path(root).mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix="dataform-", dir=root))


def stage_input_files(working_dir: Path, files: Dict[str, InputFile]) -> List[Path]:
    """
    Write input files into the working directory.

    Strings are written verbatim, whatever they start with; only FileReference
    values are read from the host.
    """
    staged = []
    for name, content in (files or {}).items():
        target = working_dir / check_relative_path(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, FileReference):
            source = Path(content.path).expanduser()
            if not source.is_file():
                raise FileNotFoundError(f"Input file reference not found: {source}")
            shutil.copyfile(source, target)
        else:
            target.write_text(content or "", encoding="utf-8")
        logger.debug(f"Staged input file: {name}")
        staged.append(target)
    return staged


def _selected(rel: str, include: List[str], exclude: List[str]) -> bool:
    if include and not any(fnmatch.fnmatch(rel, pattern) for pattern in include):
        return False
    return not any(fnmatch.fnmatch(rel, pattern) for pattern in exclude)


def stage_namespace_files(working_dir: Path, namespace_files: Optional[NamespaceFiles], settings: Settings) -> List[Path]:
    if namespace_files is None or not namespace_files.enabled:
        return []

    source = namespace_files.source or settings.namespace_files_dir
    if not source:
        logger.warning("Namespace files requested but no source directory is configured (DATAFORM_NAMESPACE_FILES_DIR)")
        return []

    root = Path(source).expanduser()
    if not root.is_dir():
        raise FileNotFoundError(f"Namespace files directory not found: {root}")

    staged = []
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        rel = path.relative_to(root).as_posix()
        if not _selected(rel, namespace_files.include, namespace_files.exclude):
            continue
        target = working_dir / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(path, target)
        staged.append(target)

    logger.info(f"Staged {len(staged)} namespace files from {root}")
    return staged


def collect_output_files(working_dir: Path, patterns: Optional[List[str]], settings: Settings) -> Dict[str, str]:
    """
    Copy files matching the declared patterns out of the working directory.

    Returns a mapping of working-directory-relative path to durable path.
    """
    if not patterns:
        return {}

    if settings.output_dir:
        output_root = Path(settings.output_dir)
        output_root.mkdir(parents=True, exist_ok=True)
        output_root = Path(tempfile.mkdtemp(prefix="outputs-", dir=output_root))
    else:
        output_root = Path(tempfile.mkdtemp(prefix="dataform-outputs-"))

    collected: Dict[str, str] = {}
    for pattern in patterns:
        matches = [p for p in working_dir.glob(check_relative_path(pattern)) if p.is_file()]
        if not matches:
            logger.warning(f"No file matches declared output: {pattern}")
        for match in matches:
            rel = match.relative_to(working_dir).as_posix()
            if rel in collected:
                continue
            target = output_root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(match, target)
            collected[rel] = str(target)

    logger.info(f"Collected {len(collected)} output files into {output_root}")
    return collected
