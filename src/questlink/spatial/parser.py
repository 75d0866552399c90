"""Best-effort parsing of the combat sidecar's battlefield report.

The report is free text owned by the sidecar, roughly::

    ⚔️ **BATTLEFIELD**: 20×20 squares

    🏗️ **TERRAIN**:
    • Wall at (5,3) - 5×5×25ft [blocks movement]
    • Pillar at (8,8) - 5×5×10ft [blocks movement] [full cover]

    👥 **COMBATANTS**:
    • Valeros at (10,10,0) - medium creature
    • Goblin Archer at (14,6,0) - small creature HP: 7/7 AC 13

Each bullet is parsed on its own. A bullet that does not fit the grammar is
recorded as a diagnostic and skipped; the rest of the report still parses.
Coordinates are converted to the local grid while parsing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from questlink.spatial.coords import DEFAULT_GRID_EXTENT, to_local
from questlink.spatial.types import (
    CoverType,
    CreatureSize,
    Dimensions,
    EntityAttributes,
    EntityKind,
    SpatialEntity,
    TerrainFeature,
    Vector3,
)

logger = logging.getLogger(__name__)

DEFAULT_FEET_PER_UNIT = 5.0

# Height given to difficult terrain that does not block movement
FLAT_TERRAIN_HEIGHT = 0.1

# Name fragments that mark a combatant as hostile when the text has no tag
HOSTILE_NAME_FRAGMENTS = (
    "goblin",
    "orc",
    "dragon",
    "kobold",
    "bandit",
    "skeleton",
    "zombie",
    "wolf",
    "troll",
    "ogre",
    "gnoll",
    "cultist",
    "spider",
)

TERRAIN_SECTION = "terrain"
COMBATANTS_SECTION = "combatants"

_EMOJI_PREFIX = r"(?:[^\x00-\x7f]+\s*)?"
_SECTION_HEADERS = {
    TERRAIN_SECTION: re.compile(_EMOJI_PREFIX + r"\**TERRAIN\**\s*:"),
    COMBATANTS_SECTION: re.compile(_EMOJI_PREFIX + r"\**COMBATANTS\**\s*:"),
}
_BATTLEFIELD_RE = re.compile(
    _EMOJI_PREFIX + r"\**BATTLEFIELD\**\s*:\s*(\d+)\s*[x×]\s*(\d+)", re.IGNORECASE
)
_BULLET_RE = re.compile(r"•|^[ \t]*[-*][ \t]+", re.MULTILINE)

_NUM = r"\d+(?:\.\d+)?"
_TERRAIN_RE = re.compile(
    r"^(?P<kind>.+?)\s+at\s+\(\s*(?P<x>\d+)\s*,\s*(?P<y>\d+)\s*\)"
    rf"\s*[-–—]\s*(?P<w>{_NUM})\s*[x×]\s*(?P<d>{_NUM})\s*[x×]\s*(?P<h>{_NUM})\s*ft",
    re.IGNORECASE,
)
_COVER_RE = re.compile(r"\[(half|three-quarters|full) cover\]", re.IGNORECASE)

_COMBATANT_RE = re.compile(
    r"^(?P<name>.+?)\s+at\s+\(\s*(?P<x>\d+)\s*,\s*(?P<y>\d+)\s*(?:,\s*(?P<z>\d+)\s*)?\)",
    re.IGNORECASE,
)
_SIZE_RE = re.compile(
    r"\b(tiny|small|medium|large|huge|gargantuan)\s+creature", re.IGNORECASE
)
_HP_RE = re.compile(r"\bHP\s*:?\s*(\d+)\s*/\s*(\d+)", re.IGNORECASE)
_AC_RE = re.compile(r"\bAC\s*:?\s*(\d+)", re.IGNORECASE)
_CONDITIONS_RE = re.compile(r"\[conditions?\s*:\s*([^\]]*)\]", re.IGNORECASE)
_TAG_RE = re.compile(r"\[(hostile|enemy|ally|party|player|npc)\]", re.IGNORECASE)
_TAG_KINDS = {
    "hostile": EntityKind.HOSTILE,
    "enemy": EntityKind.HOSTILE,
    "ally": EntityKind.ALLY,
    "party": EntityKind.ALLY,
    "player": EntityKind.ALLY,
    "npc": EntityKind.NPC,
}


class BattlefieldParseError(ValueError):
    """A single report record does not match the expected grammar."""


@dataclass(frozen=True)
class ParseDiagnostic:
    section: str
    index: int
    text: str
    reason: str


@dataclass
class ParsedBattlefield:
    entities: list[SpatialEntity] = field(default_factory=list)
    terrain: list[TerrainFeature] = field(default_factory=list)
    grid_extent: int = DEFAULT_GRID_EXTENT
    diagnostics: list[ParseDiagnostic] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.entities and not self.terrain


def parse_battlefield(
    text: str,
    *,
    default_grid_extent: int = DEFAULT_GRID_EXTENT,
    feet_per_unit: float = DEFAULT_FEET_PER_UNIT,
) -> ParsedBattlefield:
    """Parse a battlefield report into local-coordinate spatial records.

    Never raises for malformed input: bad records become diagnostics.
    """
    parsed = ParsedBattlefield(grid_extent=default_grid_extent)
    if not isinstance(text, str) or not text.strip():
        parsed.diagnostics.append(ParseDiagnostic("report", 0, "", "empty report"))
        return parsed

    if match := _BATTLEFIELD_RE.search(text):
        extent = max(int(match.group(1)), int(match.group(2)))
        if extent > 0:
            parsed.grid_extent = extent
        else:
            parsed.diagnostics.append(
                ParseDiagnostic("report", 0, match.group(0), "grid extent is zero")
            )

    sections = _split_sections(text)
    if not sections:
        parsed.diagnostics.append(
            ParseDiagnostic("report", 0, text[:80], "no terrain or combatant section")
        )

    for index, item in enumerate(_bullets(sections.get(TERRAIN_SECTION, ""))):
        try:
            parsed.terrain.append(
                _parse_terrain(item, index, parsed.grid_extent, feet_per_unit)
            )
        except BattlefieldParseError as e:
            _skip(parsed, TERRAIN_SECTION, index, item, str(e))

    has_ally = False
    for index, item in enumerate(_bullets(sections.get(COMBATANTS_SECTION, ""))):
        try:
            entity = _parse_combatant(item, index, parsed.grid_extent, has_ally)
        except BattlefieldParseError as e:
            _skip(parsed, COMBATANTS_SECTION, index, item, str(e))
            continue
        has_ally = has_ally or entity.primary
        parsed.entities.append(entity)

    logger.debug(
        "Parsed battlefield: %d entities, %d terrain, %d skipped",
        len(parsed.entities),
        len(parsed.terrain),
        len(parsed.diagnostics),
        extra={"grid_extent": parsed.grid_extent},
    )
    return parsed


def _skip(
    parsed: ParsedBattlefield, section: str, index: int, item: str, reason: str
) -> None:
    logger.warning("Skipping %s record %d (%s): %r", section, index, reason, item)
    parsed.diagnostics.append(ParseDiagnostic(section, index, item, reason))


def _split_sections(text: str) -> dict[str, str]:
    """Map each section label found in the text to its body."""
    starts: list[tuple[int, int, str]] = []
    for name, pattern in _SECTION_HEADERS.items():
        if match := pattern.search(text):
            starts.append((match.start(), match.end(), name))
    starts.sort()
    sections: dict[str, str] = {}
    for i, (_, body_start, name) in enumerate(starts):
        body_end = starts[i + 1][0] if i + 1 < len(starts) else len(text)
        sections[name] = text[body_start:body_end]
    return sections


def _bullets(section: str) -> list[str]:
    # text before the first bullet is a section preamble, not a record
    parts = _BULLET_RE.split(section)[1:]
    return [" ".join(part.split()) for part in parts if part.strip()]


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-") or "unnamed"


def _parse_terrain(
    item: str, index: int, grid_extent: int, feet_per_unit: float
) -> TerrainFeature:
    match = _TERRAIN_RE.match(item)
    if not match:
        raise BattlefieldParseError("expected '<kind> at (x,y) - WxDxHft'")

    kind = match.group("kind").strip(" *").lower()
    if not kind:
        raise BattlefieldParseError("terrain kind is empty")
    width = float(match.group("w")) / feet_per_unit
    depth = float(match.group("d")) / feet_per_unit
    height = float(match.group("h")) / feet_per_unit
    if width <= 0 or depth <= 0:
        raise BattlefieldParseError("terrain has no footprint")

    lowered = item.lower()
    blocks_movement = "[blocks movement]" in lowered
    cover = CoverType.NONE
    if cover_match := _COVER_RE.search(item):
        cover = CoverType(cover_match.group(1).lower())
    if "difficult" in kind and not blocks_movement:
        height = FLAT_TERRAIN_HEIGHT

    return TerrainFeature(
        id=f"terrain-{index}-{_slug(kind)}",
        kind=kind,
        position=Vector3(
            x=to_local(int(match.group("x")), grid_extent),
            y=0.0,
            z=to_local(int(match.group("y")), grid_extent),
        ),
        dimensions=Dimensions(width=width, depth=depth, height=height),
        blocks_movement=blocks_movement,
        cover=cover,
        color=_terrain_color(kind),
    )


def _terrain_color(kind: str) -> str:
    if kind == "wall":
        return "#555555"
    if kind == "pillar":
        return "#666666"
    if "difficult" in kind:
        return "#8b4513"
    return "#808080"


def _parse_combatant(
    item: str, index: int, grid_extent: int, has_ally: bool
) -> SpatialEntity:
    match = _COMBATANT_RE.match(item)
    if not match:
        raise BattlefieldParseError("expected '<name> at (x,y,z)'")
    name = match.group("name").strip(" *")
    if not name:
        raise BattlefieldParseError("combatant name is empty")

    size = CreatureSize.MEDIUM
    if size_match := _SIZE_RE.search(item):
        size = CreatureSize(size_match.group(1).lower())

    kind = _classify(name, item)
    primary = kind is EntityKind.ALLY and not has_ally
    if kind is None:
        kind = EntityKind.ALLY if not has_ally else EntityKind.NPC
        primary = not has_ally

    return SpatialEntity(
        id=f"creature-{index}-{_slug(name)}",
        name=name,
        kind=kind,
        size=size,
        position=Vector3(
            x=to_local(int(match.group("x")), grid_extent),
            y=float(match.group("z") or 0),
            z=to_local(int(match.group("y")), grid_extent),
        ),
        attributes=_attributes(item),
        primary=primary,
        color=_entity_color(kind, primary),
    )


def _classify(name: str, item: str) -> EntityKind | None:
    """Explicit tag first, then hostile name fragments; None when undecided."""
    if tag := _TAG_RE.search(item):
        return _TAG_KINDS[tag.group(1).lower()]
    lowered = name.lower()
    if any(fragment in lowered for fragment in HOSTILE_NAME_FRAGMENTS):
        return EntityKind.HOSTILE
    return None


def _attributes(item: str) -> EntityAttributes:
    defaults = EntityAttributes()
    hp_current, hp_max = defaults.hp_current, defaults.hp_max
    if hp := _HP_RE.search(item):
        hp_current, hp_max = int(hp.group(1)), int(hp.group(2))
    ac = defaults.ac
    if ac_match := _AC_RE.search(item):
        ac = int(ac_match.group(1))
    conditions: tuple[str, ...] = ()
    if cond := _CONDITIONS_RE.search(item):
        conditions = tuple(
            c.strip().lower() for c in cond.group(1).split(",") if c.strip()
        )
    return EntityAttributes(
        hp_current=hp_current, hp_max=hp_max, ac=ac, conditions=conditions
    )


def _entity_color(kind: EntityKind, primary: bool) -> str:
    if kind is EntityKind.HOSTILE:
        return "#ff0000"
    if primary:
        return "#00ff00"
    if kind is EntityKind.ALLY:
        return "#44cc66"
    return "#ffaa00"
