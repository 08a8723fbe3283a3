"""Crew rank substitution table.

Maps each requirable role to the ranks allowed to fill it. A rank always
fills its own billet and may be replaced by a more senior rank of the
same department, never by a junior one.
"""

from __future__ import annotations

from typing import Dict, Iterator, Tuple, Union

from ..models.crew import CrewRole

R = CrewRole

_DECK_OFFICERS = (R.THIRD_OFFICER, R.SECOND_OFFICER, R.CHIEF_OFFICER, R.MASTER)
_ENGINEERS = (R.THIRD_ENGINEER, R.SECOND_ENGINEER, R.CHIEF_ENGINEER)

ROLE_SUBSTITUTIONS: Dict[CrewRole, Tuple[CrewRole, ...]] = {
    # Deck department
    R.MASTER: (R.MASTER,),
    R.CHIEF_OFFICER: (R.CHIEF_OFFICER, R.MASTER),
    R.SECOND_OFFICER: (R.SECOND_OFFICER, R.CHIEF_OFFICER, R.MASTER),
    R.THIRD_OFFICER: _DECK_OFFICERS,
    R.DECK_OFFICER: (R.DECK_OFFICER,) + _DECK_OFFICERS,
    R.ABLE_SEAMAN: (R.ABLE_SEAMAN, R.DECK_OFFICER) + _DECK_OFFICERS,
    R.ORDINARY_SEAMAN: (R.ORDINARY_SEAMAN, R.ABLE_SEAMAN, R.DECK_OFFICER) + _DECK_OFFICERS,
    R.RATING: (R.RATING, R.ORDINARY_SEAMAN, R.ABLE_SEAMAN, R.DECK_OFFICER) + _DECK_OFFICERS,
    R.CADET: (R.CADET,),
    # Engine department
    R.CHIEF_ENGINEER: (R.CHIEF_ENGINEER,),
    R.SECOND_ENGINEER: (R.SECOND_ENGINEER, R.CHIEF_ENGINEER),
    R.THIRD_ENGINEER: _ENGINEERS,
    R.ENGINE_OFFICER: (R.ENGINE_OFFICER,) + _ENGINEERS,
    R.ELECTRO_TECHNICAL_OFFICER: (R.ELECTRO_TECHNICAL_OFFICER, R.CHIEF_ENGINEER),
    # Steward department
    R.CHIEF_STEWARD: (R.CHIEF_STEWARD,),
    R.STEWARD: (R.STEWARD, R.CHIEF_STEWARD),
    R.COOK: (R.COOK, R.STEWARD, R.CHIEF_STEWARD),
    R.OTHER: (R.OTHER,),
}


def _coerce(role: Union[CrewRole, str]) -> CrewRole | None:
    if isinstance(role, CrewRole):
        return role
    try:
        return CrewRole(str(role).upper())
    except ValueError:
        return None


def role_matches(actual_role: Union[CrewRole, str], required_role: Union[CrewRole, str]) -> bool:
    """Whether a crew member of ``actual_role`` may fill a ``required_role`` billet.

    Unknown ranks on either side never match.
    """
    actual = _coerce(actual_role)
    required = _coerce(required_role)
    if actual is None or required is None:
        return False
    return actual in ROLE_SUBSTITUTIONS.get(required, ())


def satisfying_ranks(required_role: Union[CrewRole, str]) -> Tuple[CrewRole, ...]:
    """Ranks that can fill ``required_role``, most junior first."""
    required = _coerce(required_role)
    if required is None:
        return ()
    return ROLE_SUBSTITUTIONS.get(required, ())


def substitution_pairs() -> Iterator[Tuple[CrewRole, CrewRole]]:
    """Yield every (required_role, substitute) pair where substitute != required_role."""
    for required, ranks in ROLE_SUBSTITUTIONS.items():
        for rank in ranks:
            if rank != required:
                yield required, rank
