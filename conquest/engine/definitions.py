"""
Static map definitions.
Each map lives under data/maps/<map_id>/: provinces.json (ordered province templates)
and optional manifest.json (id, display_name).
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from conquest.engine import RESOURCE_TYPES

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent / "data"
MAPS_DIR = DATA_DIR / "maps"


def _default_map_id() -> str:
    """Single place for default: conquest.config.DEFAULT_MAP_ID."""
    from conquest.config import DEFAULT_MAP_ID
    return DEFAULT_MAP_ID


def _map_dir(map_id: str) -> Path:
    return MAPS_DIR / map_id


@dataclass
class ProvinceDefinition:
    """Immutable template for one province."""
    name: str
    x: int
    y: int
    resources: dict[str, int]  # daily yield, e.g. {"gold": 8, "food": 5, "faith": 2}
    adjacent: list[str] = field(default_factory=list)  # names of neighbouring provinces


def list_maps() -> list[dict]:
    """Return [{ id, display_name }, ...] for all maps (subdirs of data/maps/ with provinces.json)."""
    out = []
    if not MAPS_DIR.exists():
        return out
    for d in sorted(MAPS_DIR.iterdir()):
        if not d.is_dir() or not (d / "provinces.json").exists():
            continue
        map_id = d.name
        manifest_path = d / "manifest.json"
        if manifest_path.exists():
            try:
                with open(manifest_path, "r") as f:
                    m = json.load(f)
                out.append({
                    "id": m.get("id", map_id),
                    "display_name": m.get("display_name", map_id),
                })
                continue
            except (json.JSONDecodeError, OSError):
                pass
        out.append({"id": map_id, "display_name": map_id})
    return out


def parse_province_definitions(raw: list[dict], strict: bool = True) -> list[ProvinceDefinition]:
    """
    Build and validate province templates from decoded JSON.

    Raises ValueError on duplicate names. An adjacency naming a province that is not
    in the template raises ValueError when strict, otherwise it is dropped with a warning.
    """
    if not isinstance(raw, list):
        raise ValueError("Province template must be a list")

    definitions = []
    seen: set[str] = set()
    for entry in raw:
        name = str(entry["name"])
        if name in seen:
            raise ValueError(f"Duplicate province name in template: {name}")
        seen.add(name)
        produces = entry.get("resources") or {}
        definitions.append(ProvinceDefinition(
            name=name,
            x=int(entry.get("x", 0)),
            y=int(entry.get("y", 0)),
            resources={r: int(produces.get(r, 0)) for r in RESOURCE_TYPES},
            adjacent=[str(a) for a in entry.get("adjacent", [])],
        ))

    for definition in definitions:
        unknown = [a for a in definition.adjacent if a not in seen]
        if not unknown:
            continue
        if strict:
            raise ValueError(
                f"Province {definition.name} lists unknown neighbours: {', '.join(unknown)}")
        logger.warning("Dropping unknown neighbours of %s: %s", definition.name, unknown)
        definition.adjacent = [a for a in definition.adjacent if a in seen]

    return definitions


def load_map_definitions(
    map_id: str | None = None,
    data_dir: Path | str | None = None,
    strict: bool = True,
) -> list[ProvinceDefinition]:
    """
    Load the ordered province templates for a map.

    Args:
        map_id: Map under data/maps/ (default from conquest.config).
        data_dir: Directory containing provinces.json (overrides map_id).
        strict: Fail on adjacency names missing from the template instead of dropping them.
    """
    if data_dir is not None:
        map_dir = Path(data_dir)
    else:
        map_dir = _map_dir(map_id or _default_map_id())
    path = map_dir / "provinces.json"
    if not path.exists():
        raise FileNotFoundError(f"Map not found: {map_dir.name}")
    with open(path, "r") as f:
        raw = json.load(f)
    return parse_province_definitions(raw, strict=strict)
