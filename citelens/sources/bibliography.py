"""Bibliography file loading.

Every bibliography ends up as a list of CSL-JSON entries (dicts with at least
an ``id``). CSL-JSON and pandoc YAML files are read directly; any other
format pandoc understands (BibTeX, BibLaTeX, RIS, EndNote XML...) is
converted by running pandoc as a subprocess.
"""
import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..exceptions import BibliographyError

logger = logging.getLogger(__name__)

PANDOC_FORMATS = {
    ".bib": "biblatex",
    ".bibtex": "bibtex",
    ".ris": "ris",
    ".xml": "endnotexml",
}


def _valid_entries(entries: Any, source: str) -> List[Dict[str, Any]]:
    """Keep entries that carry an id, warn about the rest."""
    if isinstance(entries, dict) and isinstance(entries.get("items"), list):
        entries = entries["items"]
    if not isinstance(entries, list):
        raise BibliographyError(f"Expected a list of CSL-JSON entries in {source}")

    valid = []
    skipped = 0
    for entry in entries:
        if isinstance(entry, dict) and isinstance(entry.get("id"), (str, int)):
            if not isinstance(entry["id"], str):
                entry = {**entry, "id": str(entry["id"])}
            valid.append(entry)
        else:
            skipped += 1

    if skipped:
        logger.warning(f"Skipped {skipped} bibliography entries without an id in {source}")
    return valid


def parse_csl_json(content: str, source: str = "<string>") -> List[Dict[str, Any]]:
    """Parse CSL-JSON content.

    Raises:
        BibliographyError: If the content is not valid CSL-JSON
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise BibliographyError(f"Invalid CSL-JSON in {source}: {e}") from e
    return _valid_entries(data, source)


def parse_csl_yaml(content: str, source: str = "<string>") -> List[Dict[str, Any]]:
    """Parse a pandoc YAML bibliography (a ``references`` list)."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise BibliographyError(f"Invalid YAML bibliography in {source}: {e}") from e

    if isinstance(data, dict):
        data = data.get("references", [])
    return _valid_entries(data or [], source)


def convert_with_pandoc(
    file_path: str,
    pandoc_path: Optional[str] = None,
    timeout: float = 120,
) -> List[Dict[str, Any]]:
    """Convert a bibliography file to CSL-JSON with pandoc.

    Args:
        file_path: Bibliography file in a format pandoc reads
        pandoc_path: pandoc executable (looked up on PATH by default)
        timeout: Seconds before the conversion is abandoned

    Raises:
        BibliographyError: If pandoc is missing or the conversion fails
    """
    pandoc = pandoc_path or "pandoc"
    cmd = [pandoc, file_path, "-t", "csljson"]
    input_format = PANDOC_FORMATS.get(Path(file_path).suffix.lower())
    if input_format:
        cmd[1:1] = ["-f", input_format]

    logger.info(f"Running pandoc: {' '.join(cmd)}")

    try:
        process = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True
        )
    except subprocess.CalledProcessError as e:
        logger.error(f"pandoc failed for {file_path}: {e.stderr}")
        raise BibliographyError(f"pandoc conversion failed: {(e.stderr or '')[:200]}") from e
    except subprocess.TimeoutExpired as e:
        logger.error(f"pandoc timed out for {file_path}")
        raise BibliographyError(f"pandoc timed out converting {file_path}") from e
    except FileNotFoundError as e:
        raise BibliographyError(
            f"pandoc not found at '{pandoc}'. Install pandoc or set CITELENS_PANDOC_PATH"
        ) from e

    if process.stderr:
        logger.debug(f"pandoc stderr: {process.stderr[-300:]}")

    return parse_csl_json(process.stdout, file_path)


def load_bibliography(
    file_path: str,
    pandoc_path: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Load a bibliography file as CSL-JSON entries.

    Args:
        file_path: Path to a .json, .yaml/.yml, or pandoc-readable file

    Returns:
        List of CSL-JSON entry dicts

    Raises:
        BibliographyError: If the file cannot be read or converted
    """
    path = Path(file_path).expanduser()
    if not path.is_file():
        raise BibliographyError(f"Bibliography file not found: {file_path}")

    suffix = path.suffix.lower()
    if suffix in (".json", ".yaml", ".yml"):
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise BibliographyError(f"Failed to read bibliography {file_path}: {e}") from e
        if suffix == ".json":
            entries = parse_csl_json(content, str(path))
        else:
            entries = parse_csl_yaml(content, str(path))
    else:
        entries = convert_with_pandoc(str(path), pandoc_path)

    logger.info(f"Loaded {len(entries)} bibliography entries from {path.name}")
    return entries


def bibliography_fingerprint(file_path: str) -> Optional[Tuple[int, int]]:
    """(mtime_ns, size) of a bibliography file, or None if it cannot be stat'ed."""
    try:
        stat = os.stat(Path(file_path).expanduser())
    except OSError:
        return None
    return stat.st_mtime_ns, stat.st_size
