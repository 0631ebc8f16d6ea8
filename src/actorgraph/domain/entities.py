"""Domain entities: Actor, Share, Relationship, Assignment and their vocabularies."""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from actorgraph.domain.errors import ValidationError
from actorgraph.domain.lifecycle import LifecycleState, state_of

NOTES_MAX_LENGTH = 2000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Naive datetimes are taken as UTC so stored and supplied dates always compare."""
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    UNSPECIFIED = "unspecified"

    @classmethod
    def parse(cls, value: "Gender | str | None") -> "Gender":
        """Lenient: accepts enum, English/Spanish words or initials. Anything else is unspecified."""
        if isinstance(value, Gender):
            return value
        key = (value or "").strip().lower()
        if key in ("male", "m", "masculino", "hombre"):
            return cls.MALE
        if key in ("female", "f", "femenino", "mujer"):
            return cls.FEMALE
        return cls.UNSPECIFIED


class ActorType(str, Enum):
    PERSON = "person"
    COMPANY = "company"


class RelationshipType(str, Enum):
    FAMILY = "family"
    EMPLOYMENT = "employment"
    REFERRAL = "referral"
    MEMBERSHIP = "membership"
    COMMERCIAL = "commercial"
    OTHER = "other"

    @classmethod
    def parse(cls, value: "RelationshipType | str | None") -> "RelationshipType":
        if isinstance(value, RelationshipType):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown relationship type: {value!r}.") from None


class FamilySubType(str, Enum):
    """What the destination actor is to the origin actor."""

    SPOUSE = "spouse"
    CHILD = "child"
    PARENT = "parent"
    FATHER = "father"
    MOTHER = "mother"
    SIBLING = "sibling"
    FATHER_IN_LAW = "father_in_law"
    MOTHER_IN_LAW = "mother_in_law"
    SON_IN_LAW = "son_in_law"
    DAUGHTER_IN_LAW = "daughter_in_law"
    OTHER = "other"

    @classmethod
    def parse(cls, value: "FamilySubType | str | None") -> "FamilySubType":
        """Unrecognized or empty sub-types fall back to OTHER; never raises."""
        if isinstance(value, FamilySubType):
            return value
        key = (value or "").strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            return cls.OTHER


# At most one currently active holder of these roles per origin actor.
EXCLUSIVE_SUB_TYPES = frozenset(
    {
        FamilySubType.SPOUSE,
        FamilySubType.PARENT,
        FamilySubType.FATHER,
        FamilySubType.MOTHER,
        FamilySubType.FATHER_IN_LAW,
        FamilySubType.MOTHER_IN_LAW,
    }
)


class AssignmentType(str, Enum):
    OWNER = "owner"
    TITLEHOLDER = "titleholder"
    BENEFICIARY = "beneficiary"
    INTERMEDIARY = "intermediary"

    @classmethod
    def parse(cls, value: "AssignmentType | str | None") -> "AssignmentType":
        if isinstance(value, AssignmentType):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown assignment type: {value!r}.") from None


class AssignmentModality(str, Enum):
    """How the holder came to the share."""

    PROPERTY = "property"
    LOAN = "loan"
    CORPORATE = "corporate_assignment"
    AGREEMENT = "agreement"

    @classmethod
    def parse(cls, value: "AssignmentModality | str | None") -> "AssignmentModality":
        """Accepts the English values and the club's Spanish labels. Empty means PROPERTY."""
        if isinstance(value, AssignmentModality):
            return value
        key = (value or "").strip().lower().replace(" ", "_")
        if not key:
            return cls.PROPERTY
        key = _MODALITY_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"Unknown assignment modality: {value!r}.") from None


_MODALITY_ALIASES = {
    "propiedad": "property",
    "comodato": "loan",
    "asignacion_corp": "corporate_assignment",
    "convenio": "agreement",
}


class CommercialPlan(str, Enum):
    REGULAR = "regular"
    GOLD = "gold"
    YOUNG_EXECUTIVE = "young_executive"
    HONORARY = "honorary"

    @classmethod
    def parse(cls, value: "CommercialPlan | str | None") -> "CommercialPlan":
        """Accepts the English values and the club's Spanish labels. Empty means REGULAR."""
        if isinstance(value, CommercialPlan):
            return value
        key = (value or "").strip().lower().replace(" ", "_")
        if not key:
            return cls.REGULAR
        key = _PLAN_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"Unknown commercial plan: {value!r}.") from None


_PLAN_ALIASES = {
    "plan_dorado": "gold",
    "joven_ejecutivo": "young_executive",
    "honorifico": "honorary",
}


@dataclass(frozen=True)
class Actor:
    """A person or company. Owned by other subsystems; the engine only reads it."""

    id: str
    display_name: str = ""
    gender: Gender = Gender.UNSPECIFIED
    actor_type: ActorType = ActorType.PERSON
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class Share:
    """A club share ("acción") that actors can own or be assigned to."""

    id: str
    code: str = ""
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


def _check_temporal(start_date: datetime, end_date: datetime | None) -> None:
    if end_date is not None and end_date < start_date:
        raise ValidationError("end_date cannot be earlier than start_date.")


def _clean_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    notes = notes.strip()
    if len(notes) > NOTES_MAX_LENGTH:
        raise ValidationError(f"Notes must be at most {NOTES_MAX_LENGTH} chars.")
    return notes or None


@dataclass(frozen=True)
class Relationship:
    """
    A one-hop link between two actors. Stored origin -> destination, but read
    from either side. Roles are computed when written and kept as stored.
    """

    origin_actor_id: str
    destination_actor_id: str
    relationship_type: RelationshipType
    origin_role: str
    destination_role: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    sub_type: str | None = None
    is_bidirectional: bool = True
    start_date: datetime = field(default_factory=utc_now)
    end_date: datetime | None = None
    deleted_at: datetime | None = None
    notes: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.origin_actor_id or not self.destination_actor_id:
            raise ValidationError("Relationship needs both an origin and a destination actor.")
        if self.origin_actor_id == self.destination_actor_id:
            raise ValidationError("An actor cannot be related to itself.")
        for name in ("start_date", "end_date", "deleted_at"):
            object.__setattr__(self, name, as_utc(getattr(self, name)))
        _check_temporal(self.start_date, self.end_date)
        object.__setattr__(self, "notes", _clean_notes(self.notes))

    @property
    def state(self) -> LifecycleState:
        return state_of(self)

    @property
    def is_current(self) -> bool:
        return self.end_date is None and self.deleted_at is None

    def involves(self, actor_id: str) -> bool:
        return actor_id in (self.origin_actor_id, self.destination_actor_id)


@dataclass(frozen=True)
class Assignment:
    """An actor's tie to a share: owner, titleholder, beneficiary or intermediary."""

    share_id: str
    actor_id: str
    assignment_type: AssignmentType
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    parent_assignment_id: str | None = None
    modality: AssignmentModality = AssignmentModality.PROPERTY
    commercial_plan: CommercialPlan = CommercialPlan.REGULAR
    subcode: str = ""
    full_code: str = ""
    start_date: datetime = field(default_factory=utc_now)
    end_date: datetime | None = None
    deleted_at: datetime | None = None
    notes: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.share_id or not self.actor_id:
            raise ValidationError("Assignment needs a share and an actor.")
        object.__setattr__(self, "modality", AssignmentModality.parse(self.modality))
        object.__setattr__(self, "commercial_plan", CommercialPlan.parse(self.commercial_plan))
        if self.parent_assignment_id is not None and self.parent_assignment_id == self.id:
            raise ValidationError("An assignment cannot be its own parent.")
        for name in ("start_date", "end_date", "deleted_at"):
            object.__setattr__(self, name, as_utc(getattr(self, name)))
        _check_temporal(self.start_date, self.end_date)
        object.__setattr__(self, "notes", _clean_notes(self.notes))

    @property
    def state(self) -> LifecycleState:
        return state_of(self)

    @property
    def is_current(self) -> bool:
        return self.end_date is None and self.deleted_at is None


# Fixed sub-codes; beneficiaries and intermediaries are numbered from FIRST_NUMBERED_SUBCODE.
_FIXED_SUBCODES = {
    AssignmentType.OWNER: "00",
    AssignmentType.TITLEHOLDER: "01",
}
FIRST_NUMBERED_SUBCODE = 2


def next_subcode(assignment_type: AssignmentType, used: Iterable[str]) -> str:
    """Sub-code for a new assignment on a share, given the sub-codes the share already used.

    Numbered sub-codes are never reused, even after the holder left.
    """
    fixed = _FIXED_SUBCODES.get(assignment_type)
    if fixed is not None:
        return fixed
    numbers = [int(code) for code in used if code.isdigit()]
    highest = max(numbers, default=FIRST_NUMBERED_SUBCODE - 1)
    return f"{max(highest + 1, FIRST_NUMBERED_SUBCODE):02d}"


def full_code(share_code: str, subcode: str) -> str:
    return f"{share_code}-{subcode}" if share_code else subcode
