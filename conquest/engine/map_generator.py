"""
Map generation.
Turns ordered province templates into Province entities with fresh ids and
a symmetric adjacency graph. Runs once, at game initialization.
"""

import logging
import random
import uuid

from conquest.engine import TERRAIN_BONUS, TERRAIN_BONUS_CHANCE, DEFAULT_TERRAIN_BONUS
from conquest.engine.definitions import ProvinceDefinition, load_map_definitions
from conquest.engine.state import Province, Resources

logger = logging.getLogger(__name__)


def generate_provinces(
    definitions: list[ProvinceDefinition],
    rng: random.Random | None = None,
) -> dict[str, Province]:
    """
    Create provinces from templates.

    Topology is fixed by the templates; only ids and terrain bonuses vary. Each
    province independently gets TERRAIN_BONUS with probability TERRAIN_BONUS_CHANCE.
    Adjacency names are resolved to ids and symmetrized: if A lists B, B lists A.
    Names the template does not define are skipped (the loader rejects them by default).

    Returns: province_id -> Province, in template order
    """
    rng = rng or random.Random()
    provinces: dict[str, Province] = {}
    name_to_id: dict[str, str] = {}

    # First pass: create all provinces
    for definition in definitions:
        province_id = str(uuid.uuid4())
        name_to_id[definition.name] = province_id
        has_bonus = rng.random() < TERRAIN_BONUS_CHANCE
        provinces[province_id] = Province(
            id=province_id,
            name=definition.name,
            owner_id=None,
            resources=Resources.from_dict(definition.resources),
            troops=0,
            x=definition.x,
            y=definition.y,
            adjacent_provinces=[],
            terrain_bonus=TERRAIN_BONUS if has_bonus else DEFAULT_TERRAIN_BONUS,
        )

    # Second pass: adjacency, in both directions
    for definition in definitions:
        province = provinces[name_to_id[definition.name]]
        for neighbour_name in definition.adjacent:
            neighbour_id = name_to_id.get(neighbour_name)
            if neighbour_id is None or neighbour_id == province.id:
                continue
            if neighbour_id not in province.adjacent_provinces:
                province.adjacent_provinces.append(neighbour_id)
            neighbour = provinces[neighbour_id]
            if province.id not in neighbour.adjacent_provinces:
                neighbour.adjacent_provinces.append(province.id)

    logger.debug("Generated %d provinces", len(provinces))
    return provinces


def generate_map(map_id: str | None = None, rng: random.Random | None = None) -> dict[str, Province]:
    """Load a map template and generate its provinces."""
    return generate_provinces(load_map_definitions(map_id), rng=rng)
