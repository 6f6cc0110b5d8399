"""
Named speed/offset presets.

Each demo in the gallery comes with the speed and offset that make it
look right.  Presets are stored as YAML files of the form::

    presets:
      - name: oak
        title: Old oak
        speed: 6
        offset: 48
        source: photos/oak.mpo

Presets are discovered from three sources (later sources override
earlier ones by name):
1. The built-in ``presets.yaml`` shipped with the package
2. User preset directories (WIGGLEGRAM_PRESET_PATH env var or
   ~/.config/wigglegram/presets/)
3. Project-local presets (./.wigglegram/presets/)

Applying a preset never fetches ``source``; that is the caller's job.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from wigglegram.exceptions import PresetError

logger = logging.getLogger(__name__)

_BUILTIN_FILE = Path(__file__).parent / "presets.yaml"
_USER_CONFIG_DIR = Path.home() / ".config" / "wigglegram" / "presets"
_LOCAL_DIR_NAME = ".wigglegram/presets"


@dataclass(frozen=True)
class Preset:
    """Speed and offset tuned for one stereo pair."""
    name: str
    speed: float
    offset: int
    title: str = ""
    source: str = ""


def _parse_preset(raw: dict, origin: str) -> Preset:
    try:
        name = str(raw["name"])
        speed = float(raw["speed"])
        offset = int(raw["offset"])
    except (KeyError, TypeError, ValueError) as exc:
        raise PresetError(f"{origin}: invalid preset entry {raw!r}: {exc}") from exc
    if speed <= 0 or offset < 0:
        raise PresetError(
            f"{origin}: preset '{name}' needs speed > 0 and offset >= 0"
        )
    return Preset(
        name=name,
        speed=speed,
        offset=offset,
        title=raw.get("title", ""),
        source=raw.get("source", ""),
    )


def parse_presets(text: str, source_path: Path | None = None) -> list[Preset]:
    """Parse the YAML text of a preset file."""
    origin = str(source_path) if source_path else "<string>"
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise PresetError(f"{origin}: not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise PresetError(f"{origin}: expected a mapping with a 'presets' list")
    entries = data.get("presets", [])
    if not isinstance(entries, list):
        raise PresetError(f"{origin}: 'presets' must be a list")
    return [_parse_preset(entry, origin) for entry in entries]


def _env_preset_dirs() -> list[Path]:
    raw = os.environ.get("WIGGLEGRAM_PRESET_PATH", "")
    if not raw:
        return []
    return [Path(p) for p in raw.split(os.pathsep) if p]


def preset_search_dirs() -> list[Path]:
    """User and project directories, highest priority first."""
    dirs: list[Path] = []
    local = Path.cwd() / _LOCAL_DIR_NAME
    if local.is_dir():
        dirs.append(local)
    dirs.extend(d for d in _env_preset_dirs() if d.is_dir())
    if _USER_CONFIG_DIR.is_dir():
        dirs.append(_USER_CONFIG_DIR)
    return dirs


class PresetRegistry:
    """Discovers, caches, and serves Preset objects."""

    def __init__(self, extra_dirs: list[Path] | None = None, include_builtin: bool = True) -> None:
        self._cache: dict[str, Preset] = {}
        self._extra_dirs = extra_dirs or []
        self._include_builtin = include_builtin
        self._scanned = False

    def _load_file(self, path: Path) -> dict[str, Preset]:
        try:
            presets = parse_presets(path.read_text(encoding="utf-8"), source_path=path)
        except (OSError, PresetError) as exc:
            logger.warning("Skipping preset file %s: %s", path, exc)
            return {}
        return {p.name: p for p in presets}

    def _scan_dir(self, directory: Path) -> dict[str, Preset]:
        found: dict[str, Preset] = {}
        for path in sorted(directory.glob("*.y*ml")):
            found.update(self._load_file(path))
        return found

    def scan(self, force: bool = False) -> None:
        if self._scanned and not force:
            return
        self._cache.clear()
        if self._include_builtin and _BUILTIN_FILE.is_file():
            self._cache.update(self._load_file(_BUILTIN_FILE))
        search = [d for d in self._extra_dirs if d.is_dir()] + preset_search_dirs()
        for d in reversed(search):
            self._cache.update(self._scan_dir(d))
        self._scanned = True

    def list_presets(self) -> list[Preset]:
        self.scan()
        return sorted(self._cache.values(), key=lambda p: p.name)

    def get(self, name: str) -> Preset:
        self.scan()
        if name not in self._cache:
            raise KeyError(
                f"Preset '{name}' not found.  "
                f"Available: {', '.join(sorted(self._cache))}"
            )
        return self._cache[name]

    def register(self, preset: Preset) -> None:
        self.scan()
        self._cache[preset.name] = preset


_default_registry: PresetRegistry | None = None


def get_registry() -> PresetRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = PresetRegistry()
    return _default_registry
