"""
Preferences Schema - Nested travel preferences document.

Two parse modes:
- PreferencesData: lenient, every section falls back to the seeded defaults.
  Used for backend responses.
- PreferencesForm: strict, every section must be supplied.
  Used when the user submits the preferences form.
"""
from pydantic import BaseModel, Field, ValidationError, field_validator
from typing import Optional
from enum import Enum
import re


class IntensityLevel(str, Enum):
    """Activity intensity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AccommodationStyle(str, Enum):
    """Accommodation style options."""
    BOUTIQUE = "boutique"
    RESORT = "resort"
    AIRBNB = "airbnb"
    HOSTEL = "hostel"


DEFAULT_TRAVELERS = [
    {
        "name": "Zo",
        "description": (
            "Primary traveler. American, based in NYC. Technical/product engineer. Kitesurfer. "
            "Very comfortable with logistics and planning. Prefers to control routing and timing. "
            "Needs reliable Wi-Fi for work most of the time."
        ),
    },
    {
        "name": "Sarah",
        "description": (
            "Former adventure scout ranger and trekking guide. Highly competent outdoors (treks, ropes). "
            "Creative, interior designer. Small, skilled, adventurous duo who can handle self-reliant "
            "missions but prefer vetted local guides for technical lines."
        ),
    },
]

DEFAULT_BUCKET_LIST = [
    "Siargao, Philippines",
    "El Nido, Palawan",
    "Coron, Philippines",
    "Pucón, Chile",
    "Cochamó Valley, Chile",
    "Mendoza, Argentina",
    "El Chaltén, Patagonia",
    "Futaleufú, Chile",
    "Santa Catalina, Panama",
    "Bocas del Toro, Panama",
    "Boquete, Panama",
    "Ha Giang, Vietnam",
    "Phan Rang, Vietnam",
]

DEFAULT_VISITED = [
    "Moalboal, Cebu",
    "Badian, Cebu",
    "Boracay, Philippines",
    "Siquijor, Philippines",
]

DEFAULT_NO_GO = [
    "Overly touristy, crowded resorts",
    "Generic hotel chains",
    "One-night hotel hops",
]

DEFAULT_ACTIVITIES = [
    "Kitesurfing",
    "Surfing",
    "Cliff jumping",
    "Canyoning / canyoneering",
    "Volcano treks",
    "Multi-day technical hikes",
    "Motorcycle / dirt-bike missions",
    "Skydiving",
    "Spearfishing",
    "Freediving",
    "Cooking classes",
    "Boxing / local gyms",
]

DEFAULT_ACCOMMODATION_REQUIREMENTS = [
    "Boutique, Balinese-style design",
    "Wood, water, fire elements",
    "Private outdoor space",
    "Reliable Wi-Fi / good desk",
    "Nature-integrated, barefoot luxe",
    "Small batch, sense of place",
]

DEFAULT_NOTES = """## Adventure & Date Style
- Small, skilled, adventurous duo who prefer vetted local guides for technical lines
- Prefer 2-3 night blocks per destination (avoid 1-night stands)
- Stack adventures on arrival/departure days when reasonable
- Allow 1 intentional off-grid weekend (no Wi-Fi) per trip when desired

## Operators & Guides
- Private or small group guides preferred (2-person bookings)
- Small, skilled, flexible operators with local knowledge, safety oriented
- For technical water/canyon routes: operators who run advanced routes

## Food & Culture
- One cooking class per trip
- Top-tier restaurants and local food experiences
- Interested in boxing gyms and local training options

## Trip Windows
- Typical trips around Christmas (arrive ~Dec 25), returning Jan 5-6
- Prefers morning/early flights to maximize same-day activity
- Cognizant of wind/monsoon/swell seasons for kitesurfing and surf"""


class TravelerProfile(BaseModel):
    """One traveler."""
    name: str = Field(..., min_length=1, description="Traveler name")
    description: Optional[str] = Field(None, description="Background, skills, needs")


# Strict section models (form submission)

class DestinationPreferences(BaseModel):
    bucket_list: list[str]
    visited: list[str]
    no_go: list[str]


class ActivityPreferences(BaseModel):
    preferred: list[str]
    intensity_level: IntensityLevel


class AccommodationPreferences(BaseModel):
    style: AccommodationStyle
    max_nightly_rate: float = Field(..., ge=0, le=10000)
    requirements: list[str]


class BudgetPreferences(BaseModel):
    currency: str
    daily_budget: Optional[float]
    flight_budget_per_person: Optional[float]


class PreferencesForm(BaseModel):
    """Strict preferences schema - every section is required."""
    travelers: list[TravelerProfile]
    destinations: DestinationPreferences
    activities: ActivityPreferences
    accommodation: AccommodationPreferences
    budget: BudgetPreferences
    notes: Optional[str]


# Lenient section models (backend responses)

class DestinationPreferencesData(DestinationPreferences):
    bucket_list: list[str] = Field(default_factory=lambda: list(DEFAULT_BUCKET_LIST))
    visited: list[str] = Field(default_factory=lambda: list(DEFAULT_VISITED))
    no_go: list[str] = Field(default_factory=lambda: list(DEFAULT_NO_GO))


class ActivityPreferencesData(ActivityPreferences):
    preferred: list[str] = Field(default_factory=lambda: list(DEFAULT_ACTIVITIES))
    intensity_level: IntensityLevel = IntensityLevel.HIGH


class AccommodationPreferencesData(AccommodationPreferences):
    style: AccommodationStyle = AccommodationStyle.BOUTIQUE
    max_nightly_rate: float = Field(500, ge=0, le=10000)
    requirements: list[str] = Field(default_factory=lambda: list(DEFAULT_ACCOMMODATION_REQUIREMENTS))


class BudgetPreferencesData(BudgetPreferences):
    currency: str = "USD"
    daily_budget: Optional[float] = 300
    flight_budget_per_person: Optional[float] = 1500


class PreferencesData(BaseModel):
    """Preferences document with defaults for every missing section or field."""
    travelers: list[TravelerProfile] = Field(
        default_factory=lambda: [TravelerProfile(**t) for t in DEFAULT_TRAVELERS]
    )
    destinations: DestinationPreferencesData = Field(default_factory=DestinationPreferencesData)
    activities: ActivityPreferencesData = Field(default_factory=ActivityPreferencesData)
    accommodation: AccommodationPreferencesData = Field(default_factory=AccommodationPreferencesData)
    budget: BudgetPreferencesData = Field(default_factory=BudgetPreferencesData)
    notes: Optional[str] = DEFAULT_NOTES

    @field_validator("notes", mode="before")
    @classmethod
    def blank_notes_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


# Form section registry: name -> (strict model, label)
FORM_SECTIONS = {
    "travelers": (None, "Traveler Profiles"),
    "destinations": (DestinationPreferences, "Destinations"),
    "activities": (ActivityPreferences, "Activities"),
    "accommodation": (AccommodationPreferences, "Accommodation"),
    "budget": (BudgetPreferences, "Budget"),
}


def _format_errors(exc: ValidationError, prefix: tuple = ()) -> dict[str, str]:
    """Flatten pydantic errors into {'dotted.path': message}."""
    errors = {}
    for err in exc.errors():
        path = ".".join(str(part) for part in prefix + tuple(err["loc"]))
        errors[path or "__root__"] = err["msg"]
    return errors


def validate_section(name: str, data) -> dict[str, str]:
    """
    Validate one form section.

    Returns:
        Dict of field path -> error message (empty when valid)
    """
    if name not in FORM_SECTIONS:
        raise KeyError(f"Unknown preferences section: {name}")

    model, _ = FORM_SECTIONS[name]
    if model is None:
        # Traveler list: must be a list of valid profiles
        if not isinstance(data, list):
            return {name: "Input should be a valid list"}
        errors = {}
        for idx, traveler in enumerate(data):
            try:
                TravelerProfile.model_validate(traveler)
            except ValidationError as e:
                errors.update(_format_errors(e, (name, idx)))
        return errors

    try:
        model.model_validate(data)
    except ValidationError as e:
        return _format_errors(e, (name,))
    return {}


def validate_form(data: dict) -> tuple[Optional[PreferencesForm], dict[str, str]]:
    """Validate a full form submission. Returns (form or None, errors)."""
    try:
        return PreferencesForm.model_validate(data), {}
    except ValidationError as e:
        return None, _format_errors(e)


def form_progress(data: dict) -> dict:
    """Report which form sections are currently valid."""
    sections = {}
    for name, (_, label) in FORM_SECTIONS.items():
        errors = validate_section(name, data.get(name)) if name in data else {name: "Field required"}
        sections[name] = {"label": label, "valid": not errors, "errors": errors}

    valid_count = sum(1 for s in sections.values() if s["valid"])
    return {
        "sections": sections,
        "valid_sections": valid_count,
        "total_sections": len(sections),
        "is_complete": valid_count == len(sections),
    }


def parse_list_field(text: Optional[str]) -> list[str]:
    """Split a textarea value into list entries (one per line)."""
    if not text:
        return []
    return [line.strip() for line in re.split(r"[\r\n]+", text) if line.strip()]


def parse_optional_number(text: Optional[str]) -> Optional[float]:
    """Parse an optional numeric input; blank means None."""
    if text is None or str(text).strip() == "":
        return None
    return float(text)


LIST_FIELDS = {
    "destinations": ("bucket_list", "visited", "no_go"),
    "activities": ("preferred",),
    "accommodation": ("requirements",),
}
NUMBER_FIELDS = {
    "accommodation": ("max_nightly_rate",),
    "budget": ("daily_budget", "flight_budget_per_person"),
}


def _number_or_raw(text: Optional[str]):
    """Parsed number, or the raw text so validation can report it."""
    try:
        return parse_optional_number(text)
    except ValueError:
        return text


def preferences_from_fields(fields: dict[str, str]) -> dict:
    """
    Build a preferences document from flat form fields.

    Field names are dotted paths ('budget.currency', 'travelers.0.name').
    Traveler rows with neither a name nor a description are dropped.
    """
    data: dict = {"travelers": []}

    rows: dict[int, dict] = {}
    for key, value in fields.items():
        parts = key.split(".")
        if parts[0] == "travelers" and len(parts) == 3 and parts[1].isdigit():
            rows.setdefault(int(parts[1]), {})[parts[2]] = (value or "").strip()
    for idx in sorted(rows):
        row = rows[idx]
        if row.get("name") or row.get("description"):
            data["travelers"].append({
                "name": row.get("name", ""),
                "description": row.get("description") or None,
            })

    for section in ("destinations", "activities", "accommodation", "budget"):
        prefix = f"{section}."
        data[section] = {
            key[len(prefix):]: value for key, value in fields.items() if key.startswith(prefix)
        }
    for section, names in LIST_FIELDS.items():
        for name in names:
            data[section][name] = parse_list_field(data[section].get(name))
    for section, names in NUMBER_FIELDS.items():
        for name in names:
            data[section][name] = _number_or_raw(data[section].get(name))

    notes = (fields.get("notes") or "").strip()
    data["notes"] = notes or None
    return data
