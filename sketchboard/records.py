"""
Typed records exchanged between extraction, composition and the session.

Every optional text field is either ``None`` ("not stated") or a non-empty,
trimmed string. Validators normalise blank input to ``None`` so the
distinction survives construction from raw dictionaries.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SubjectKind(str, Enum):
    HUMAN = "human"
    CREATURE = "creature"
    ROBOT = "robot"
    ANIMAL = "animal"
    ALIEN = "alien"
    HYBRID = "hybrid"
    OTHER = "other"
    UNKNOWN = "unknown"

    @property
    def is_resolved_non_human(self) -> bool:
        return self not in (SubjectKind.HUMAN, SubjectKind.UNKNOWN)


class TimeOfDay(str, Enum):
    DAWN = "dawn"
    MORNING = "morning"
    NOON = "noon"
    AFTERNOON = "afternoon"
    DUSK = "dusk"
    NIGHT = "night"


class LocationScale(str, Enum):
    INTIMATE = "intimate"
    MEDIUM = "medium"
    VAST = "vast"
    EPIC = "epic"


class CrowdLevel(str, Enum):
    EMPTY = "empty"
    SPARSE = "sparse"
    MODERATE = "moderate"
    CROWDED = "crowded"


class SectionKind(str, Enum):
    SUBJECT = "subject"
    ACTION = "action"
    CAMERA = "camera"
    LOCATION = "location"
    ATMOSPHERE = "atmosphere"
    STYLE = "style"
    CONSTRAINTS = "constraints"
    CONTINUITY = "continuity"


def _normalise_blank(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, (list, tuple)):
        items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
        return tuple(items) or None
    if isinstance(value, (set, frozenset)):
        items = {item.strip().lower() for item in value if isinstance(item, str) and item.strip()}
        return frozenset(items) or None
    return value


class _OptionalFieldsModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: _normalise_blank(value) for key, value in data.items()}
        return data

    def populated_fields(self) -> list[str]:
        """Names of the stated fields, in declaration order."""
        return [name for name in type(self).model_fields if getattr(self, name) is not None]


class AttributeRecord(_OptionalFieldsModel):
    subject_kind: SubjectKind = SubjectKind.UNKNOWN
    species: str | None = None

    age: str | None = None
    gender: str | None = None
    height: str | None = None
    build: str | None = None
    hair: str | None = None
    clothing: str | None = None
    distinctive_features: tuple[str, ...] | None = None

    face_shape: str | None = None
    eye_shape: str | None = None
    eye_color: str | None = None
    eyebrows: str | None = None
    nose: str | None = None
    mouth: str | None = None
    jawline: str | None = None
    cheekbones: str | None = None
    shoulder_width: str | None = None
    posture: str | None = None
    skin_tone: str | None = None
    default_expression: str | None = None

    body_type: str | None = None
    texture: str | None = None
    coloration: str | None = None
    size: str | None = None
    features: frozenset[str] | None = None

    based_on: str | None = None

    def populated_fields(self) -> list[str]:
        return [name for name in super().populated_fields() if name != "subject_kind"]

    @property
    def is_empty(self) -> bool:
        return not self.populated_fields()


def merge_attributes(base: AttributeRecord, extracted: AttributeRecord) -> AttributeRecord:
    """Overlay extracted values onto ``base`` only where a value was found.

    ``subject_kind`` is taken from ``extracted`` unless it stayed ``unknown``.
    """
    updates: dict[str, Any] = {
        name: getattr(extracted, name)
        for name in extracted.populated_fields()
    }
    if extracted.subject_kind is not SubjectKind.UNKNOWN:
        updates["subject_kind"] = extracted.subject_kind
    return base.model_copy(update=updates)


class RealPlaceInfo(_OptionalFieldsModel):
    city: str | None = None
    country: str | None = None
    region: str | None = None
    specific_location: str | None = None
    landmark: str | None = None
    known_for: str | None = None


class LocationRecord(_OptionalFieldsModel):
    is_real_place: bool = False
    real_place_info: RealPlaceInfo | None = None

    location_type: str | None = None
    setting: str | None = None
    time_of_day: TimeOfDay | None = None
    weather: str | None = None
    lighting: str | None = None
    atmosphere: str | None = None
    architecture: str | None = None
    terrain: str | None = None
    vegetation: str | None = None
    prominent_features: tuple[str, ...] | None = None
    color_palette: str | None = None
    scale: LocationScale | None = None
    condition: str | None = None
    crowd_level: CrowdLevel | None = None
    soundscape: str | None = None
    cultural_context: str | None = None

    def populated_fields(self) -> list[str]:
        return [name for name in super().populated_fields() if name != "is_real_place"]


class Character(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    attributes: AttributeRecord = Field(default_factory=AttributeRecord)
    role: str | None = None
    description: str | None = None


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    details: LocationRecord = Field(default_factory=LocationRecord)
    description: str | None = None


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    panel_number: int = Field(ge=1)
    action: str
    subject_summary: str | None = None


class CameraSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    angle: str | None = None
    composition: str | None = None


class PromptSection(BaseModel):
    """One semantic block of a composed prompt.

    ``pinned`` counts the leading clauses that budget trimming must keep.
    """

    model_config = ConfigDict(frozen=True)

    kind: SectionKind
    clauses: tuple[str, ...] = ()
    pinned: int = Field(default=0, ge=0)
    separator: str = ", "

    @property
    def text(self) -> str:
        return self.separator.join(self.clauses)

    @property
    def is_empty(self) -> bool:
        return not self.clauses


class PanelBeat(BaseModel):
    """Scene data for one panel, as handed to a session."""

    model_config = ConfigDict(frozen=True)

    panel_number: int = Field(ge=1)
    characters: list[Character] = Field(default_factory=list)
    location: Location | None = None
    action: str
    camera: CameraSpec | None = None
    mood: str | None = None
    lighting: str | None = None


class PanelPrompt(BaseModel):
    model_config = ConfigDict(frozen=True)

    panel_number: int
    grammar: str
    prompt: str
    source: Literal["primary", "refined", "fallback"]


class ImageRequest(BaseModel):
    """Boundary payload for the image-generation collaborator."""

    prompt: str = Field(min_length=1)
    reference_image: bytes | None = None
    reference_image_url: str | None = None
    reference_mime_type: str = "image/png"
    strength: float = Field(default=0.35, ge=0.2, le=0.6)
