"""
Manifest loading, verification and lookup.
"""

import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from .config import DEV_API_PREFIX, DEV_API_WEB_PREFIX
from .gates import gate_web_exposed
from .models import Manifest, ManifestItem, Package

logger = logging.getLogger(__name__)

KIND_ACTION = "action"
KIND_SEQUENCE = "sequence"
KIND_NONE = "none"


class ManifestError(Exception):
    """Raised when a manifest cannot be loaded or fails verification."""


# ============================================================
# Lookup
# ============================================================

@dataclass(frozen=True)
class Resolution:
    kind: str
    item: Optional[ManifestItem] = None
    package: Optional[Package] = None


NOT_FOUND = Resolution(KIND_NONE)


class ManifestIndex:
    """
    Read-only lookup of packages, actions and sequences.

    A name declared as both a sequence and an action resolves to the
    sequence.
    """

    def __init__(self, manifest: Manifest):
        self._manifest = manifest

    def resolve(self, package_name: str, item_name: str) -> Resolution:
        package = self._manifest.packages.get(package_name)
        if package is None:
            return NOT_FOUND
        sequence = package.sequences.get(item_name)
        if sequence is not None:
            return Resolution(KIND_SEQUENCE, sequence, package)
        action = package.actions.get(item_name)
        if action is not None:
            return Resolution(KIND_ACTION, action, package)
        return NOT_FOUND


# ============================================================
# Loading
# ============================================================

def _read_document(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            return json.load(f)
        return yaml.safe_load(f)


def _packages_of(document: Any) -> Dict[str, Any]:
    if not isinstance(document, dict):
        raise ManifestError("manifest must be a mapping")
    # full app config: {manifest: {full: {packages: ...}}}
    full = document.get("manifest", {})
    if isinstance(full, dict) and isinstance(full.get("full"), dict):
        document = full["full"]
    packages = document.get("packages")
    if packages is None:
        raise ManifestError("manifest has no 'packages' section")
    return packages


def _resolve_functions(packages: Dict[str, Any], root: Path) -> None:
    for package in (packages or {}).values():
        for action in ((package or {}).get("actions") or {}).values():
            if isinstance(action, dict) and action.get("function"):
                function = Path(action["function"])
                if not function.is_absolute():
                    function = root / function
                action["function"] = str(function.resolve())


def manifest_from_dict(packages: Dict[str, Any], root: Union[str, Path] = ".") -> Manifest:
    """
    Build a Manifest from a `packages` mapping.

    Relative action `function` paths are resolved against `root`.

    Raises:
        ManifestError: If the mapping is not a valid manifest
    """
    packages = copy.deepcopy(packages or {})
    _resolve_functions(packages, Path(root))
    try:
        return Manifest(packages=packages)
    except ValidationError as e:
        raise ManifestError(f"invalid manifest: {e}") from e


def load_manifest(path: Union[str, Path]) -> Manifest:
    """
    Load a manifest from a YAML or JSON file.

    Raises:
        ManifestError: If the file is missing or is not a valid manifest
    """
    path = Path(path)
    try:
        document = _read_document(path)
    except FileNotFoundError as e:
        raise ManifestError(f"manifest not found: {path}") from e
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ManifestError(f"could not parse manifest {path}: {e}") from e

    manifest = manifest_from_dict(_packages_of(document), root=path.parent)
    logger.debug("loaded manifest %s with packages %s", path, list(manifest.packages))
    return manifest


# ============================================================
# Verification
# ============================================================

def verify_manifest(manifest: Manifest) -> None:
    """
    Verify that every sequence can be run.

    Raises:
        ManifestError: If a sequence has no actions or names an action
            that does not exist in its package
    """
    for package in manifest.packages.values():
        for sequence_name, sequence in package.sequences.items():
            if not sequence.actions:
                raise ManifestError(f"Actions for the sequence '{sequence_name}' not provided.")
            for action_name in sequence.actions:
                if action_name not in package.actions:
                    raise ManifestError(
                        f"Sequence component '{action_name}' does not exist "
                        f"(sequence = '{sequence_name}')"
                    )


# ============================================================
# URLs
# ============================================================

def action_urls(
    manifest: Manifest,
    host: str = "localhost",
    port: int = 9080,
    scheme: str = "http",
) -> Dict[str, str]:
    """
    Local URL of every action and sequence, keyed by `<package>/<name>`.

    Web items are listed under the web prefix, others under the API prefix.
    """
    urls: Dict[str, str] = {}
    for package_name, package in manifest.packages.items():
        items: Dict[str, ManifestItem] = {**package.actions, **package.sequences}
        for name, item in items.items():
            prefix = DEV_API_WEB_PREFIX if gate_web_exposed(item) else DEV_API_PREFIX
            urls[f"{package_name}/{name}"] = f"{scheme}://{host}:{port}/{prefix}/{package_name}/{name}"
    return urls

