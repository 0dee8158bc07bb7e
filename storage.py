"""Artifact storage shared between pipeline stages.

Stages never hand each other in-memory objects when run as separate CI
steps; each one reads its predecessor's artifact from a store and writes
its own. The file names are fixed so the workflow YAML and any uploaded
artifacts line up with what the code produces.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from models import Bundle, Findings

logger = logging.getLogger(__name__)

BUNDLE_FILE = "review_bundle.json"
STOP_FILE = "STOP_REVIEW.txt"
FINDINGS_FILE = "gemini_findings.json"
RAW_ANALYSIS_FILE = "gemini_analyze_raw.txt"
REPORT_FILE = "review_final.md"


class ArtifactStore(ABC):
    """Backend-agnostic access to the named artifacts of one run."""

    @abstractmethod
    def read_text(self, name: str) -> str | None:
        """Return the artifact's text, or ``None`` if it does not exist."""

    @abstractmethod
    def write_text(self, name: str, text: str) -> None: ...

    @abstractmethod
    def delete(self, name: str) -> None: ...

    def exists(self, name: str) -> bool:
        return self.read_text(name) is not None

    # -- typed helpers -----------------------------------------------------
    def save_bundle(self, bundle: Bundle) -> None:
        self.write_text(BUNDLE_FILE, bundle.to_json())

    def load_bundle(self) -> Bundle | None:
        """Parsed bundle, or ``None`` when missing or unreadable."""
        text = self.read_text(BUNDLE_FILE)
        if text is None:
            return None
        try:
            return Bundle.model_validate_json(text)
        except ValidationError as e:
            logger.warning("Ignoring unreadable %s: %s", BUNDLE_FILE, e)
            return None

    def stop_requested(self) -> bool:
        return self.exists(STOP_FILE)

    def save_findings(self, findings: Findings) -> None:
        self.write_text(FINDINGS_FILE, findings.to_json())

    def load_findings(self) -> Findings | None:
        """Parsed findings, or ``None`` when missing or not valid JSON."""
        text = self.read_text(FINDINGS_FILE)
        if text is None:
            return None
        try:
            return Findings.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Ignoring unreadable %s: %s", FINDINGS_FILE, e)
            return None

    def save_report(self, report: str) -> None:
        self.write_text(REPORT_FILE, report if report.endswith("\n") else report + "\n")

    def load_report(self) -> str | None:
        return self.read_text(REPORT_FILE)


class LocalArtifactStore(ArtifactStore):
    """Artifacts as plain files in one directory (the CI workspace)."""

    def __init__(self, root: str | Path = "."):
        self.root = Path(root)

    def _path(self, name: str) -> Path:
        return self.root / name

    def read_text(self, name: str) -> str | None:
        path = self._path(name)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def write_text(self, name: str, text: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self._path(name).write_text(text, encoding="utf-8")
        logger.info("Wrote %s", self._path(name))

    def delete(self, name: str) -> None:
        self._path(name).unlink(missing_ok=True)


class MemoryArtifactStore(ArtifactStore):
    """Dictionary-backed store for single-process runs and tests."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.files: dict[str, str] = dict(initial or {})

    def read_text(self, name: str) -> str | None:
        return self.files.get(name)

    def write_text(self, name: str, text: str) -> None:
        self.files[name] = text

    def delete(self, name: str) -> None:
        self.files.pop(name, None)
