"""Challenge resolution shared by the job and transfer engines"""

from typing import Dict, Iterator, List, Optional

from sandbox_bank.domain.models import ChallengeAnswer

CHALLENGE_LOGIN = "login"
CHALLENGE_PIN = "pin"
CHALLENGE_AUTH_METHOD = "auth_method"
CHALLENGE_TAN = "tan"


def is_answered(answers: List[ChallengeAnswer], challenge_id: str, expected: str) -> bool:
    """True if some answer carries the challenge ID with the expected value"""
    return any(a.id == challenge_id and a.value == expected for a in answers)


def values_for(answers: List[ChallengeAnswer], challenge_id: str) -> Iterator[str]:
    """Yield every supplied value for a challenge ID, in submission order"""
    for answer in answers:
        if answer.id == challenge_id:
            yield answer.value


def previous_value(answers: List[ChallengeAnswer], challenge_id: str) -> Optional[str]:
    """Most recently supplied value for a challenge ID"""
    found = None
    for value in values_for(answers, challenge_id):
        found = value
    return found


def unmet_challenges(challenge_map: Dict[str, str], answers: List[ChallengeAnswer]) -> List[str]:
    """
    Challenge IDs from the catalog that no supplied answer satisfies.

    Order follows the catalog's challenge map.
    """
    return [cid for cid, expected in challenge_map.items() if not is_answered(answers, cid, expected)]


def without_challenge(answers: List[ChallengeAnswer], challenge_id: str) -> List[ChallengeAnswer]:
    return [a for a in answers if a.id != challenge_id]


def merge_stored_answers(
    stored: List[ChallengeAnswer],
    submitted: List[ChallengeAnswer],
) -> List[ChallengeAnswer]:
    """
    Merge submitted answers flagged store=True into a stored answer list.

    One entry per challenge ID survives; the last submitted value wins and
    keeps the position of the ID's first appearance.
    """
    merged: Dict[str, ChallengeAnswer] = {a.id: a for a in stored}
    for answer in submitted:
        if answer.store:
            merged[answer.id] = ChallengeAnswer(id=answer.id, value=answer.value, store=True)
    return list(merged.values())


def combine_answers(
    submitted: List[ChallengeAnswer],
    stored: List[ChallengeAnswer],
) -> List[ChallengeAnswer]:
    """Submitted answers first, then remembered ones"""
    return list(submitted) + list(stored)
