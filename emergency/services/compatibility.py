"""Red cell compatibility lookups.

The rule table is a hand-maintained constant; nothing here is inferred at
runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet

from django.db import models

from emergency.exceptions import InvalidBloodType


class BloodType(models.TextChoices):
    A_POS = "A+", "A+"
    A_NEG = "A-", "A-"
    B_POS = "B+", "B+"
    B_NEG = "B-", "B-"
    AB_POS = "AB+", "AB+"
    AB_NEG = "AB-", "AB-"
    O_POS = "O+", "O+"
    O_NEG = "O-", "O-"


@dataclass(frozen=True)
class CompatibilityRule:
    can_donate_to: FrozenSet[BloodType]
    can_receive_from: FrozenSet[BloodType]


_T = BloodType

COMPATIBILITY_RULES: Dict[BloodType, CompatibilityRule] = {
    _T.A_POS: CompatibilityRule(
        can_donate_to=frozenset({_T.A_POS, _T.AB_POS}),
        can_receive_from=frozenset({_T.A_POS, _T.A_NEG, _T.O_POS, _T.O_NEG}),
    ),
    _T.A_NEG: CompatibilityRule(
        can_donate_to=frozenset({_T.A_POS, _T.A_NEG, _T.AB_POS, _T.AB_NEG}),
        can_receive_from=frozenset({_T.A_NEG, _T.O_NEG}),
    ),
    _T.B_POS: CompatibilityRule(
        can_donate_to=frozenset({_T.B_POS, _T.AB_POS}),
        can_receive_from=frozenset({_T.B_POS, _T.B_NEG, _T.O_POS, _T.O_NEG}),
    ),
    _T.B_NEG: CompatibilityRule(
        can_donate_to=frozenset({_T.B_POS, _T.B_NEG, _T.AB_POS, _T.AB_NEG}),
        can_receive_from=frozenset({_T.B_NEG, _T.O_NEG}),
    ),
    _T.AB_POS: CompatibilityRule(
        can_donate_to=frozenset({_T.AB_POS}),
        can_receive_from=frozenset(_T),
    ),
    _T.AB_NEG: CompatibilityRule(
        can_donate_to=frozenset({_T.AB_POS, _T.AB_NEG}),
        can_receive_from=frozenset({_T.A_NEG, _T.B_NEG, _T.AB_NEG, _T.O_NEG}),
    ),
    _T.O_POS: CompatibilityRule(
        can_donate_to=frozenset({_T.A_POS, _T.B_POS, _T.AB_POS, _T.O_POS}),
        can_receive_from=frozenset({_T.O_POS, _T.O_NEG}),
    ),
    _T.O_NEG: CompatibilityRule(
        can_donate_to=frozenset(_T),
        can_receive_from=frozenset({_T.O_NEG}),
    ),
}

# Precomputed inverse: recipient type -> donor types that may give to it.
_DONORS_FOR_RECIPIENT: Dict[BloodType, FrozenSet[BloodType]] = {
    need: frozenset(t for t, rule in COMPATIBILITY_RULES.items() if need in rule.can_donate_to)
    for need in BloodType
}


def parse_blood_type(value) -> BloodType:
    """Normalise user input such as ``" o- "`` into a ``BloodType``."""

    if isinstance(value, BloodType):
        return value
    if not isinstance(value, str):
        raise InvalidBloodType(f"Invalid blood type: {value!r}")
    try:
        return BloodType(value.strip().upper())
    except ValueError:
        raise InvalidBloodType(f"Invalid blood type: {value!r}") from None


def donors_who_can_help(need) -> FrozenSet[BloodType]:
    """Donor types able to give to a patient of type ``need``."""

    return _DONORS_FOR_RECIPIENT[parse_blood_type(need)]


def recipients_this_donor_helps(donor) -> FrozenSet[BloodType]:
    """Recipient types that may receive from a donor of type ``donor``."""

    return COMPATIBILITY_RULES[parse_blood_type(donor)].can_donate_to


def is_compatible(donor_type, recipient_type) -> bool:
    return parse_blood_type(recipient_type) in recipients_this_donor_helps(donor_type)


__all__ = [
    "BloodType",
    "CompatibilityRule",
    "COMPATIBILITY_RULES",
    "parse_blood_type",
    "donors_who_can_help",
    "recipients_this_donor_helps",
    "is_compatible",
]
