"""Unpack the metadata archive and read the JSON documents inside it.

Archive layout (optionally wrapped in one top-level directory):

    shows/<show_id>.json
    recordings/<identifier>.json
    collections.json
    manifest.json          (optional)
"""

import json
import logging
import os
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from deadly_sync.core.exceptions import DocumentParseError, ExtractionError
from deadly_sync.ingestion.documents import Manifest

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def is_safe_member(name: str) -> bool:
    """Reject absolute paths and parent-directory components."""
    if os.path.isabs(name) or name.startswith(("/", "\\")):
        return False
    parts = name.replace("\\", "/").split("/")
    return ".." not in parts


class ZipArchiveExtractor:
    """Extract a ZIP archive into a fresh temporary directory.

    The caller owns the returned directory and removes it when done.
    """

    def __init__(self, work_dir: str | None = None):
        self.work_dir = work_dir

    def extract(self, archive_path: str | Path) -> Path:
        if self.work_dir:
            Path(self.work_dir).mkdir(parents=True, exist_ok=True)
        output_dir = Path(tempfile.mkdtemp(prefix="deadly-extract-", dir=self.work_dir))
        logger.info(f"Extracting {archive_path} to {output_dir}")

        try:
            extracted = 0
            with zipfile.ZipFile(archive_path) as archive:
                for member in archive.infolist():
                    if member.is_dir():
                        continue
                    # Prevent path traversal via malicious zip entries
                    if not is_safe_member(member.filename):
                        logger.warning(f"Skipping suspicious zip member: {member.filename}")
                        continue
                    archive.extract(member, output_dir)
                    extracted += 1
        except (zipfile.BadZipFile, OSError, EOFError) as e:
            shutil.rmtree(output_dir, ignore_errors=True)
            raise ExtractionError(str(archive_path), e) from e

        logger.info(f"Extracted {extracted} files")
        return output_dir


def resolve_data_root(extract_dir: Path) -> Path:
    """Directory holding ``shows/``.

    Archives built from a folder unpack into a single wrapper directory; look
    one level down for it, and fall back to the extraction root otherwise.
    """
    if (extract_dir / "shows").is_dir():
        return extract_dir

    try:
        children = [p for p in extract_dir.iterdir() if p.is_dir()]
    except OSError as e:
        logger.warning(f"Could not list {extract_dir}: {e}")
        return extract_dir

    if len(children) == 1 and (children[0] / "shows").is_dir():
        return children[0]
    return extract_dir


def list_json_files(directory: Path) -> list[Path]:
    """``*.json`` files directly under ``directory``, sorted by path."""
    if not directory.is_dir():
        return []
    return sorted(
        (p for p in directory.iterdir() if p.suffix == ".json" and p.is_file()),
        key=lambda p: str(p),
    )


def load_json(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DocumentParseError(str(path), e) from e


def load_document(model: type[ModelT], path: Path) -> ModelT:
    """Parse and validate one JSON document, raising DocumentParseError."""
    data = load_json(path)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise DocumentParseError(str(path), e) from e


def find_collections_file(root: Path) -> Path | None:
    """Locate collections.json at the root, under data/, or one level down."""
    candidates = [root / "collections.json", root / "data" / "collections.json"]
    for candidate in candidates:
        if candidate.is_file():
            return candidate

    try:
        children = sorted(p for p in root.iterdir() if p.is_dir())
    except OSError:
        return None
    for child in children:
        candidate = child / "collections.json"
        if candidate.is_file():
            return candidate
    return None


def load_manifest(root: Path) -> Manifest | None:
    """Optional manifest.json; None when absent or unreadable."""
    path = root / "manifest.json"
    if not path.is_file():
        return None
    try:
        return load_document(Manifest, path)
    except DocumentParseError as e:
        logger.warning(f"Ignoring unreadable manifest: {e}")
        return None
