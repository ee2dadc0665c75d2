"""Reconcile the content tree into the page registry."""

import logging
import os
from pathlib import Path

from devjournal.core.errors import RegistryError, WalkError
from devjournal.core.models import ReconcileResult
from devjournal.core.registry import MARKDOWN_EXTENSION, PageRegistry

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset({".git"})


def iter_markdown_paths(root: Path, extension: str = MARKDOWN_EXTENSION):
    """Yield slash-separated paths, relative to root, of every markdown file.

    Raises WalkError if the tree cannot be enumerated.
    """
    root = Path(root)
    if not root.is_dir():
        raise WalkError(root, "not a directory" if root.exists() else "does not exist")

    def on_error(exc: OSError) -> None:
        raise WalkError(root, str(exc)) from exc

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        dirnames[:] = [d for d in dirnames if d not in SKIP_DIRS]
        for filename in filenames:
            if not filename.endswith(extension):
                continue
            full_path = Path(dirpath) / filename
            if not full_path.is_file():
                continue
            yield full_path.relative_to(root).as_posix()


def reconcile(
    root: Path,
    registry: PageRegistry,
    extension: str = MARKDOWN_EXTENSION,
) -> ReconcileResult:
    """Register every markdown file under root.

    Single-file failures are logged and skipped; a tree that cannot be
    walked raises WalkError.
    """
    logger.info("Starting content sync with database...")
    result = ReconcileResult()

    for rel_path in iter_markdown_paths(root, extension):
        result.discovered += 1
        logger.debug("Found markdown file: %s", rel_path)
        try:
            if registry.upsert_page(rel_path):
                result.created += 1
        except RegistryError:
            logger.exception("Failed to upsert page %s", rel_path)
            result.failed.append(rel_path)

    logger.info(
        "Content sync finished: %d found, %d new, %d failed",
        result.discovered,
        result.created,
        len(result.failed),
    )
    return result
