"""
Location description -> LocationRecord.

Descriptions follow the location describer's output format:
``LOCATION_TYPE: urban | IS_REAL_PLACE: yes | CITY: Paris | ... | SETTING: ...``
followed by a comma-separated list of visual details.
"""

from __future__ import annotations

import logging
import re

from sketchboard.extraction.patterns import (
    FieldRule,
    apply_rules,
    clean_value,
    compile_all,
    labelled,
    words_before,
)
from sketchboard.records import CrowdLevel, LocationRecord, LocationScale, RealPlaceInfo, TimeOfDay

logger = logging.getLogger(__name__)

_MARKER_VALUE = r"[^|\n]+"
_LOCATION_TYPE = re.compile(
    r"\bLOCATION_TYPE\s*:\s*(natural|urban|indoor|fantasy|sci-fi|historical|other)\b",
    re.IGNORECASE,
)
_IS_REAL_PLACE = re.compile(r"\bIS_REAL_PLACE\s*:\s*(yes|no|true|false)\b", re.IGNORECASE)
_FEATURING = re.compile(r"\bfeaturing[:\s]+([^|\n.]+)", re.IGNORECASE)

_TIME_ALIASES = {
    "sunrise": TimeOfDay.DAWN,
    "daybreak": TimeOfDay.DAWN,
    "midday": TimeOfDay.NOON,
    "sunset": TimeOfDay.DUSK,
    "twilight": TimeOfDay.DUSK,
    "evening": TimeOfDay.DUSK,
    "nighttime": TimeOfDay.NIGHT,
    "night-time": TimeOfDay.NIGHT,
    "midnight": TimeOfDay.NIGHT,
}
_CROWD_ALIASES = {
    "deserted": CrowdLevel.EMPTY,
    "empty": CrowdLevel.EMPTY,
    "packed": CrowdLevel.CROWDED,
    "bustling": CrowdLevel.CROWDED,
}


def _time_of_day(value: str) -> TimeOfDay | None:
    value = value.lower()
    try:
        return TimeOfDay(value)
    except ValueError:
        return _TIME_ALIASES.get(value)


def _scale(value: str) -> LocationScale | None:
    try:
        return LocationScale(value.lower())
    except ValueError:
        return None


def _crowd_level(value: str) -> CrowdLevel | None:
    value = value.lower()
    try:
        return CrowdLevel(value)
    except ValueError:
        return _CROWD_ALIASES.get(value)


REAL_PLACE_RULES = (
    FieldRule("city", compile_all(labelled("CITY", _MARKER_VALUE))),
    FieldRule("country", compile_all(labelled("COUNTRY", _MARKER_VALUE))),
    FieldRule("region", compile_all(labelled("REGION", _MARKER_VALUE))),
    FieldRule("specific_location", compile_all(labelled("SPECIFIC_LOCATION", _MARKER_VALUE))),
    FieldRule("landmark", compile_all(labelled("LANDMARK", _MARKER_VALUE))),
    FieldRule("known_for", compile_all(labelled("KNOWN_FOR", _MARKER_VALUE))),
)

VISUAL_RULES = (
    FieldRule("setting", compile_all(labelled("SETTING", r"[^,|\n]+"))),
    FieldRule(
        "time_of_day",
        compile_all(
            labelled("time of day", r"[a-z-]+"),
            r"\b(dawn|morning|noon|afternoon|dusk|night)\s+time\b",
            r"\b(?:at|during)\s+(dawn|dusk|night|noon|sunrise|sunset|twilight|midnight)\b",
            r"\b(sunrise|sunset|twilight|nighttime|night-time|midnight|daybreak)\b",
        ),
        transform=_time_of_day,
    ),
    FieldRule(
        "weather",
        compile_all(
            labelled("weather", r"[^,|\n]+"),
            r"\b(sunny|rainy|foggy|stormy|clear|overcast|snowy|cloudy|misty|windy)\s+weather\b",
            r"\b((?:light|heavy|thick|dense|drifting)\s+(?:fog|rain|snow|mist|drizzle))\b",
        ),
    ),
    FieldRule(
        "lighting",
        compile_all(
            labelled("lighting", r"[^,|\n]+"),
            r"\b((?:natural|artificial|dim|bright|dramatic|soft|golden hour|harsh|diffused|warm|cool|"
            r"moody|neon|flickering|candle)(?:\s+[a-z-]+){0,2}\s+(?:lighting|light|sunlight|glow))\b",
        ),
    ),
    FieldRule(
        "atmosphere",
        compile_all(
            labelled("atmosphere", r"[^,|\n]+"),
            r"\b(peaceful|tense|mysterious|chaotic|romantic|eerie|serene|bustling|calm|dramatic|cozy|"
            r"gloomy|festive|somber|ominous|lively)\s+atmosphere\b",
        ),
    ),
    FieldRule(
        "scale",
        compile_all(
            labelled("scale", r"[a-z]+"),
            r"\b(intimate|medium|vast|epic)\s+scale\b",
        ),
        transform=_scale,
    ),
    FieldRule(
        "architecture",
        compile_all(
            labelled("architecture", r"[^,|\n]+"),
            r"\b((?:gothic|modern|rustic|futuristic|victorian|industrial|minimalist|ornate|classical|"
            r"contemporary|brutalist|art deco|baroque|haussmannian|haussmanian|colonial|medieval)\s+architecture)\b",
        ),
    ),
    FieldRule(
        "terrain",
        compile_all(
            labelled("terrain", r"[^,|\n]+"),
            r"\b((?:flat|hilly|mountainous|underwater|rocky|sandy|icy|marshy|swampy|rolling)\s+terrain)\b",
            r"\b(mountainous|hilly|rocky|sandy|icy|marshy|swampy)\b",
        ),
    ),
    FieldRule(
        "vegetation",
        compile_all(
            labelled("vegetation", r"[^,|\n]+"),
            r"\b((?:dense|sparse|lush|barren|overgrown|thick|tropical)\s+(?:vegetation|forest|jungle|"
            r"trees|foliage|undergrowth|grass|grassland))\b",
            r"\b(jungle|grassland)\b",
        ),
    ),
    FieldRule(
        "condition",
        compile_all(
            labelled("condition", r"[^,|\n]+"),
            r"\b((?:well-maintained|abandoned|ruined|pristine|decaying|dilapidated|derelict|run-down|"
            r"weathered|crumbling))\s+condition\b",
            r"\b(abandoned|derelict|dilapidated|ruined|decaying|crumbling|under construction)\b",
        ),
    ),
    FieldRule(
        "crowd_level",
        compile_all(
            labelled("crowd level", r"[a-z]+"),
            r"\b(moderate|sparse)\s+crowds?\b",
            r"\b(crowded|packed|deserted)\b",
            r"\b(empty)\s+(?:and\s+(?:silent|quiet|still)|streets?|rooms?|halls?|of people)\b",
            r"\b(bustling)\s+with\s+people\b",
        ),
        transform=_crowd_level,
    ),
    FieldRule(
        "color_palette",
        compile_all(
            labelled(r"colou?r palette|colou?rs?", r"[^,|\n]+"),
            r"\b((?:warm|cool|monochrome|vibrant|muted|earth|golden|neon|pastel|desaturated)(?:\s+[a-z-]+)?\s+"
            r"(?:tones|colou?rs|hues|blues|greens|reds)(?:\s+and\s+[a-z]+)?(?:\s+with\s+[a-z -]+?\s+accents)?)\b",
        ),
    ),
    FieldRule(
        "soundscape",
        compile_all(
            labelled("soundscape", r"[^,|\n]+"),
            words_before(r"sounds?|noise|hum|chatter|birdsong", 1, 2),
        ),
    ),
    FieldRule(
        "cultural_context",
        compile_all(
            labelled("cultural context", r"[^,|\n]+"),
            r"\b((?:[a-z-]+\s+){1,2}(?:culture|heritage|influences?|traditions?))\b",
        ),
    ),
)


def _prominent_features(text: str, extracted: dict[str, object]) -> tuple[str, ...] | None:
    match = _FEATURING.search(text)
    if match is None:
        return None
    # The featuring clause often runs into later visual clauses; drop those.
    claimed = [str(getattr(value, "value", value)).lower() for value in extracted.values()]
    features = []
    for part in match.group(1).split(","):
        item = clean_value(part)
        if not item:
            continue
        lowered = item.lower()
        if any(lowered == value or value in lowered for value in claimed if len(value) > 3):
            continue
        features.append(item)
    return tuple(features) or None


def extract_location(description: str | None) -> LocationRecord:
    """Parse a location description into a LocationRecord; never raises."""
    if not description or not description.strip():
        return LocationRecord()

    values: dict[str, object] = {}
    type_match = _LOCATION_TYPE.search(description)
    if type_match:
        values["location_type"] = type_match.group(1).lower()

    real_match = _IS_REAL_PLACE.search(description)
    is_real_place = bool(real_match) and real_match.group(1).lower() in ("yes", "true")
    values["is_real_place"] = is_real_place
    if is_real_place:
        info = apply_rules(REAL_PLACE_RULES, description)
        if info:
            values["real_place_info"] = RealPlaceInfo(**info)

    visual = apply_rules(VISUAL_RULES, description)
    values.update(visual)
    features = _prominent_features(description, visual)
    if features:
        values["prominent_features"] = features

    record = LocationRecord(**values)
    logger.debug(
        "location_extracted real_place=%s type=%s fields=%s",
        record.is_real_place,
        record.location_type,
        ",".join(record.populated_fields()),
    )
    return record
