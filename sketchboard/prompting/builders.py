"""
Clause builders shared by the section composer and the fallback composer.

Field order inside a subject is a content policy: image models weight early
clauses most heavily, so identity-bearing face and hair details lead and
wardrobe comes late. Both composers go through these helpers so the order
cannot drift between them.
"""

from __future__ import annotations

from sketchboard.records import AttributeRecord, CameraSpec, Character, CrowdLevel, Location, TimeOfDay

_TIME_PHRASES = {
    TimeOfDay.DAWN: "at dawn",
    TimeOfDay.MORNING: "in the morning",
    TimeOfDay.NOON: "at noon",
    TimeOfDay.AFTERNOON: "in the afternoon",
    TimeOfDay.DUSK: "at dusk",
    TimeOfDay.NIGHT: "at night",
}

_CROWD_PHRASES = {
    CrowdLevel.EMPTY: "no people around",
    CrowdLevel.SPARSE: "a few people around",
    CrowdLevel.MODERATE: "moderate crowd",
    CrowdLevel.CROWDED: "dense crowd",
}

REAL_PLACE_INSTRUCTION = "depict it as the real location, true to its known appearance"


def _qualify(value: str | None, noun: str) -> str | None:
    """Append ``noun`` to single-word values ("dim" -> "dim lighting")."""
    if not value:
        return None
    if noun in value.lower() or len(value.split()) > 1:
        return value
    return f"{value} {noun}"


def _eyes_clause(attrs: AttributeRecord) -> str | None:
    if attrs.eye_color and attrs.eye_shape:
        return f"{attrs.eye_color} {attrs.eye_shape} eyes"
    if attrs.eye_color or attrs.eye_shape:
        return _qualify(attrs.eye_color or attrs.eye_shape, "eyes")
    return None


def _wearing(clothing: str | None) -> str | None:
    if not clothing:
        return None
    return clothing if clothing.lower().startswith("wearing ") else f"wearing {clothing}"


def _based_on(value: str | None) -> str | None:
    return f"based on {value}" if value else None


def human_attribute_clauses(attrs: AttributeRecord) -> list[str]:
    clauses = [
        attrs.face_shape,
        attrs.jawline,
        attrs.cheekbones,
        attrs.hair,
        _eyes_clause(attrs),
        attrs.eyebrows,
        attrs.nose,
        attrs.mouth,
        *(attrs.distinctive_features or ()),
        attrs.height,
        _qualify(attrs.build, "build"),
        attrs.shoulder_width,
        attrs.posture,
        attrs.skin_tone,
        _wearing(attrs.clothing),
        attrs.age,
        attrs.gender,
        attrs.default_expression,
        _based_on(attrs.based_on),
    ]
    return [clause for clause in clauses if clause]


def non_human_attribute_clauses(attrs: AttributeRecord) -> list[str]:
    lead = attrs.species or attrs.subject_kind.value
    clauses = [
        lead,
        attrs.hair,
        attrs.body_type,
        attrs.size,
        _qualify(attrs.build, "build"),
        attrs.height,
        attrs.texture,
        attrs.coloration,
        *sorted(attrs.features or ()),
        *(attrs.distinctive_features or ()),
        attrs.age,
        attrs.gender,
        _based_on(attrs.based_on),
        _wearing(attrs.clothing),
    ]
    return [clause for clause in clauses if clause]


def attribute_clauses(attrs: AttributeRecord) -> list[str]:
    """Populated attribute clauses in salience order, without the subject's name."""
    if attrs.subject_kind.is_resolved_non_human:
        return non_human_attribute_clauses(attrs)
    return human_attribute_clauses(attrs)


def subject_clauses(character: Character) -> list[str]:
    """Name first, then attribute clauses. The name is the pinned clause."""
    return [character.name.strip(), *attribute_clauses(character.attributes)]


def location_clauses(location: Location) -> tuple[list[str], int]:
    """Return location clauses and how many leading clauses are mandatory."""
    details = location.details
    info = details.real_place_info
    visual = [
        _TIME_PHRASES.get(details.time_of_day) if details.time_of_day else None,
        _qualify(details.weather, "weather"),
        _qualify(details.lighting, "lighting"),
        _qualify(details.atmosphere, "atmosphere"),
    ]
    physical = [
        _qualify(details.architecture, "architecture"),
        _qualify(details.terrain, "terrain"),
        _qualify(details.vegetation, "vegetation"),
        _qualify(details.condition, "condition"),
        *(details.prominent_features or ()),
    ]

    if details.is_real_place and info is not None:
        place = info.specific_location or location.name
        identity = ", ".join(part for part in (place, info.city, info.country) if part)
        clauses = [identity, REAL_PLACE_INSTRUCTION]
        context = info.known_for or info.landmark
        if context:
            clauses.append(f"known for {context}" if info.known_for else context)
        pinned = 2
    else:
        clauses = [location.name.strip()]
        if details.setting and details.setting.lower() != location.name.strip().lower():
            clauses.append(details.setting)
        if details.location_type:
            clauses.append(f"{details.location_type} setting")
        pinned = 1

    clauses.extend(clause for clause in (*visual, *physical) if clause)
    return clauses, pinned


def camera_clauses(camera: CameraSpec | None) -> list[str]:
    if camera is None:
        return []
    return [clause.strip() for clause in (camera.composition, camera.angle) if clause and clause.strip()]


def atmosphere_clauses(
    location: Location | None,
    mood: str | None = None,
    lighting: str | None = None,
) -> list[str]:
    """Scene-level mood and light, then the location's palette and crowd."""
    clauses = [_qualify(lighting, "lighting"), _qualify(mood, "mood")]
    if location is not None:
        details = location.details
        clauses.extend(
            [
                details.color_palette,
                _CROWD_PHRASES.get(details.crowd_level) if details.crowd_level else None,
                details.soundscape,
            ]
        )
    return [clause for clause in clauses if clause]
