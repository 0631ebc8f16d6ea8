"""Reciprocal role labels for family relationships.

sub_type says what the destination is to the origin ("child" means the
destination is the origin's child). The destination role is therefore fixed by
the sub_type, and the origin role is its counterpart, picked by the origin's
gender.
"""

from dataclasses import dataclass

from actorgraph.domain.entities import FamilySubType, Gender


@dataclass(frozen=True)
class RolePair:
    origin_role: str
    destination_role: str


@dataclass(frozen=True)
class _Counterpart:
    """Origin role by gender. Symmetric sub-types use the same label for all three."""

    male: str
    female: str
    neutral: str

    def for_gender(self, gender: Gender) -> str:
        if gender is Gender.MALE:
            return self.male
        if gender is Gender.FEMALE:
            return self.female
        return self.neutral


def _symmetric(label: str) -> _Counterpart:
    return _Counterpart(male=label, female=label, neutral=label)


_AS_PARENT = _Counterpart(male="father", female="mother", neutral="parent")
_AS_CHILD = _Counterpart(male="son", female="daughter", neutral="child")
_AS_CHILD_IN_LAW = _Counterpart(
    male="son_in_law", female="daughter_in_law", neutral="child_in_law"
)
_AS_PARENT_IN_LAW = _Counterpart(
    male="father_in_law", female="mother_in_law", neutral="parent_in_law"
)

OTHER_LABEL = FamilySubType.OTHER.value

# Total over FamilySubType; a test walks every member.
RECIPROCITY_TABLE: dict[FamilySubType, _Counterpart] = {
    FamilySubType.SPOUSE: _symmetric("spouse"),
    FamilySubType.SIBLING: _symmetric("sibling"),
    FamilySubType.CHILD: _AS_PARENT,
    FamilySubType.PARENT: _AS_CHILD,
    FamilySubType.FATHER: _AS_CHILD,
    FamilySubType.MOTHER: _AS_CHILD,
    FamilySubType.FATHER_IN_LAW: _AS_CHILD_IN_LAW,
    FamilySubType.MOTHER_IN_LAW: _AS_CHILD_IN_LAW,
    FamilySubType.SON_IN_LAW: _AS_PARENT_IN_LAW,
    FamilySubType.DAUGHTER_IN_LAW: _AS_PARENT_IN_LAW,
    FamilySubType.OTHER: _symmetric(OTHER_LABEL),
}


def resolve_roles(
    sub_type: FamilySubType | str | None, origin_gender: Gender | str | None
) -> RolePair:
    """Return (origin_role, destination_role). Pure and total: unknown input maps to the "other" pair."""
    kind = FamilySubType.parse(sub_type)
    counterpart = RECIPROCITY_TABLE.get(kind)
    if counterpart is None:
        return RolePair(origin_role=OTHER_LABEL, destination_role=OTHER_LABEL)
    return RolePair(
        origin_role=counterpart.for_gender(Gender.parse(origin_gender)),
        destination_role=kind.value,
    )
