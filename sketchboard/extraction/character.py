"""
Character description -> AttributeRecord.

The vision describer is asked to open its answer with a marker such as
``CHARACTER_TYPE: creature | SPECIES: dragon``. When present the marker is
authoritative for the subject kind; without it the kind stays ``unknown``.
Human-only rules run for ``human`` and ``unknown`` subjects, non-human rules
only for a resolved non-human kind. The gate is decided once per record.
A ``SPECIES`` value is dropped for human subjects.
"""

from __future__ import annotations

import logging
import re

from sketchboard.extraction.patterns import (
    VALUE,
    FieldRule,
    KeywordRule,
    KeywordSetRule,
    ListRule,
    apply_rules,
    clean_value,
    compile_all,
    labelled,
    words_before,
)
from sketchboard.records import AttributeRecord, SubjectKind

logger = logging.getLogger(__name__)

# Marker values end at the same separators as any other free-text value.
_KIND_MARKER = re.compile(r"^\s*CHARACTER_TYPE\s*:\s*([a-z][a-z _-]*?)\s*(?=[|,.;\n]|$)", re.IGNORECASE)
_SPECIES_MARKER = re.compile(r"\bSPECIES\s*:\s*([^|,.;\n]*)", re.IGNORECASE)
_MARKER_SEGMENT = re.compile(
    r"\b(?:CHARACTER_TYPE|SPECIES)\s*:\s*[^|,.;\n]*(?:\s*[|,.;\n]\s*)?",
    re.IGNORECASE,
)
_ABSENT_VALUES = {"n/a", "na", "none", "unknown", "-"}

_KIND_ALIASES: dict[str, SubjectKind] = {
    "human": SubjectKind.HUMAN,
    "person": SubjectKind.HUMAN,
    "creature": SubjectKind.CREATURE,
    "monster": SubjectKind.CREATURE,
    "robot": SubjectKind.ROBOT,
    "android": SubjectKind.ROBOT,
    "mech": SubjectKind.ROBOT,
    "animal": SubjectKind.ANIMAL,
    "alien": SubjectKind.ALIEN,
    "hybrid": SubjectKind.HYBRID,
    "cyborg": SubjectKind.HYBRID,
    "other": SubjectKind.OTHER,
    "unknown": SubjectKind.UNKNOWN,
}

_GENDER_GROUPS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Non-binary", ("non-binary", "nonbinary", "androgynous", "genderless")),
    ("Female", ("female", "woman", "girl", "lady", "feminine", "she", "her", "hers")),
    ("Male", ("male", "man", "boy", "gentleman", "masculine", "he", "him", "his")),
)
_GENDER_KEYWORDS = KeywordRule("gender", _GENDER_GROUPS)


def _canonical_gender(value: str) -> str:
    return _GENDER_KEYWORDS.apply(value) or value


# Fields every subject can have.
UNIVERSAL_RULES = (
    FieldRule(
        "age",
        compile_all(
            labelled("age"),
            r"\b((?:early|mid|late)[- ]\d0s)\b",
            r"\b(\d{1,3}[- ]years?[- ]old)\b",
            r"\b(\d0s)\b",
            r"\b(teenage|teenager|young adult|middle-aged|elderly|adolescent|child|ancient|young)\b",
        ),
    ),
    FieldRule(
        "gender",
        compile_all(labelled("gender")),
        transform=_canonical_gender,
    ),
    FieldRule(
        "height",
        compile_all(
            labelled("height"),
            r"\b(\d\s*(?:(?:ft|feet|foot)\b|')\s*(?:\d{1,2}(?:\s*(?:inches|in)\b|\")?)?|\d{3}\s*cm\b)",
            r"\b((?:very\s+|quite\s+)?(?:tall|short|petite|towering)|average height|medium height)\b"
            r"(?!\s+(?:[a-z-]+\s+){0,2}(?:hair|sleeves?|skirt|beard|jacket|coat|dress|pants|shorts|cape|tail))",
        ),
    ),
    FieldRule(
        "build",
        compile_all(
            labelled("build"),
            labelled("physique"),
            r"\b((?:athletic|slim|slender|stocky|muscular|heavyset|lean|thin|wiry|broad|average|curvy|"
            r"chubby|plump|burly|lanky|sturdy|medium|compact|bulky|hulking)\s+(?:build|physique|frame|figure))\b",
            r"\b(athletic|slender|stocky|muscular|heavyset|wiry|lanky|burly|chubby|plump|bulky|hulking)\b",
        ),
    ),
    FieldRule(
        "hair",
        compile_all(
            labelled("hair"),
            words_before(r"hair|braids|dreadlocks|ponytail|pigtails|afro|mohawk|buzz cut|crew cut", 0, 4),
            r"\b(bald(?:\s+head)?|shaved head)\b",
        ),
    ),
    FieldRule(
        "clothing",
        compile_all(
            labelled(r"clothing|outfit|attire"),
            rf"\b(?:wearing|dressed in|clad in)\s+(?:an?\s+|the\s+)?({VALUE})",
            r"\bin\s+an?\s+([a-z -]*?\b(?:coat|jacket|dress|suit|shirt|t-shirt|hoodie|sweater|uniform|"
            r"robe|gown|armor|armour|cloak|kimono|overalls|tunic))\b",
        ),
    ),
    ListRule(
        "distinctive_features",
        compile_all(
            labelled(r"distinctive features?|distinguishing marks?", r"[^.;|\n]+"),
            words_before(
                r"scars?|tattoos?|freckles|birthmarks?|moles?|piercings?|glasses|spectacles|eye ?patch|"
                r"beard|stubble|mustache|moustache|goatee|dimples|wrinkles|earrings?|necklace",
                0,
                2,
            ),
        ),
    ),
    FieldRule(
        "based_on",
        compile_all(rf"\b(?:based on|resembl(?:es|ing)|looks like|inspired by)\s+({VALUE})"),
    ),
)

HUMAN_RULES = (
    FieldRule(
        "face_shape",
        compile_all(
            labelled("face shape"),
            r"\b((?:oval|round|square|heart[- ]shaped|heart|diamond|oblong|long|angular|triangular|"
            r"rectangular|narrow|wide)\s+face)\b",
        ),
    ),
    FieldRule(
        "jawline",
        compile_all(
            labelled("jawline"),
            r"\b((?:strong|sharp|defined|square|soft|rounded|angular|chiseled|chiselled|narrow|wide|"
            r"prominent|pointed)\s+(?:jawline|jaw))\b",
        ),
    ),
    FieldRule(
        "cheekbones",
        compile_all(
            labelled("cheekbones"),
            r"\b((?:high|low|prominent|defined|sharp|soft|wide|sculpted)\s+cheekbones)\b",
        ),
    ),
    FieldRule(
        "eye_color",
        compile_all(
            labelled(r"eye colou?r"),
            r"\b(brown|blue|green|hazel|gr[ae]y|amber|black|dark|violet|golden|gold|silver|"
            r"light brown|dark brown|ice blue)(?:\s+[a-z-]+)?\s+eyes\b",
        ),
    ),
    FieldRule(
        "eye_shape",
        compile_all(
            labelled("eye shape"),
            r"\b(almond|round|hooded|monolid|upturned|downturned|narrow|wide|deep[- ]set|close[- ]set|"
            r"wide[- ]set|large|small)(?:-shaped)?\s+eyes\b",
        ),
    ),
    FieldRule("eyebrows", compile_all(labelled("eyebrows"), words_before(r"eyebrows|brows", 1, 2))),
    FieldRule("nose", compile_all(labelled("nose"), words_before("nose", 1, 2))),
    FieldRule("mouth", compile_all(labelled(r"mouth|lips"), words_before(r"lips|mouth", 1, 2))),
    FieldRule(
        "shoulder_width",
        compile_all(r"\b((?:broad|narrow|wide|sloped|square|slim)\s+shoulders)\b"),
    ),
    FieldRule(
        "posture",
        compile_all(
            labelled("posture"),
            r"\b((?:upright|straight|slouched|slouching|hunched|confident|relaxed|rigid|stooped|proud)\s+posture)\b",
        ),
    ),
    FieldRule(
        "skin_tone",
        compile_all(
            labelled(r"skin(?: tone)?|complexion"),
            words_before(r"skin tone|skin|complexion", 1, 2),
        ),
    ),
    FieldRule(
        "default_expression",
        compile_all(
            labelled("expression"),
            words_before("expression", 1, 2),
            r"\b((?:warm|gentle|friendly|shy|smug|wry|faint|broad|bright|sad|crooked)\s+smile)\b",
            r"\b(smiling|frowning|scowling|grinning|stern|cheerful|melancholic|determined|pensive)\b",
        ),
    ),
)

NON_HUMAN_RULES = (
    FieldRule(
        "body_type",
        compile_all(
            labelled(r"body(?: type)?"),
            words_before(r"body|torso|chassis|form", 1, 2),
        ),
    ),
    FieldRule(
        "texture",
        compile_all(
            labelled("texture"),
            words_before(r"scales|fur|feathers|hide|plating|chitin|carapace|exoskeleton|bark", 0, 2),
            r"\b((?:scaly|furry|feathered|metallic|slimy|rocky|leathery|smooth|rough)(?:\s+(?:texture|surface|skin))?)\b",
        ),
    ),
    FieldRule(
        "coloration",
        compile_all(
            labelled(r"colou?ration|colou?rs?"),
            words_before(r"colou?ration|colou?ring|markings|stripes|spots", 1, 2),
            r"\b((?:red|green|blue|black|white|gr[ae]y|golden|gold|silver|brown|purple|orange|yellow|crimson|"
            r"emerald|bronze|copper)(?:\s+and\s+[a-z]+)?)\s+(?:scales|fur|feathers|plating|hide|skin|body|shell)\b",
        ),
    ),
    FieldRule(
        "size",
        compile_all(
            labelled("size"),
            r"\b(tiny|small|medium-sized|large|huge|giant|massive|enormous|colossal|pint-sized)\b",
        ),
    ),
    KeywordSetRule(
        "features",
        (
            "horn", "wing", "tail", "claw", "fang", "tentacle", "antennae", "hooves", "mane", "beak",
            "talon", "spike", "fin", "gill", "antler", "third eye", "glowing eye", "visor", "tusk",
        ),
    ),
)


def _parse_kind(text: str) -> SubjectKind:
    match = _KIND_MARKER.match(text)
    if match is None:
        return SubjectKind.UNKNOWN
    value = match.group(1).strip().lower()
    return _KIND_ALIASES.get(value, SubjectKind.OTHER)


def _parse_species(text: str) -> str | None:
    match = _SPECIES_MARKER.search(text)
    if match is None:
        return None
    value = clean_value(match.group(1))
    if not value or value.lower() in _ABSENT_VALUES:
        return None
    return value


def strip_markers(text: str) -> str:
    return _MARKER_SEGMENT.sub("", text).strip(" \t|,")


def extract_attributes(description: str | None) -> AttributeRecord:
    """Parse one free-form description into an AttributeRecord.

    Never raises: text that matches nothing yields a record whose only
    populated attribute is ``subject_kind`` (``unknown`` without a marker).
    """
    if not description or not description.strip():
        return AttributeRecord()

    kind = _parse_kind(description)
    values: dict[str, object] = {"subject_kind": kind}
    species = _parse_species(description) if kind is not SubjectKind.HUMAN else None
    if species is not None:
        values["species"] = species

    body = strip_markers(description)
    values.update(apply_rules(UNIVERSAL_RULES, body))
    if "gender" not in values:
        gender = _GENDER_KEYWORDS.apply(body)
        if gender is not None:
            values["gender"] = gender

    if kind.is_resolved_non_human:
        values.update(apply_rules(NON_HUMAN_RULES, body))
    else:
        values.update(apply_rules(HUMAN_RULES, body))

    record = AttributeRecord(**values)
    logger.debug(
        "character_extracted kind=%s species=%s fields=%s",
        record.subject_kind.value,
        record.species,
        ",".join(record.populated_fields()),
    )
    return record
