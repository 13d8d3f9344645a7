"""Decide whether two differently formatted names denote the same application."""
from typing import Callable, Iterable, Optional, TypeVar

from utils import normalize_app_name

T = TypeVar("T")

MIN_CONTAINMENT_LENGTH = 3
MIN_PUBLISHER_TOKEN_LENGTH = 2


def publisher_tokens(publisher: Optional[str]):
    if not publisher:
        return []
    return [token.casefold() for token in publisher.split() if len(token) > MIN_PUBLISHER_TOKEN_LENGTH]


def are_same_application(name_a: Optional[str], name_b: Optional[str], publisher: Optional[str] = None) -> bool:
    if not name_a or not name_b:
        return False
    left = normalize_app_name(name_a).casefold()
    right = normalize_app_name(name_b).casefold()
    if not left or not right:
        return False
    if left == right:
        return True
    # Abbreviated vs. full names ("Code" / "Visual Studio Code").
    if len(left) > MIN_CONTAINMENT_LENGTH and len(right) > MIN_CONTAINMENT_LENGTH:
        if left in right or right in left:
            return True
    for token in publisher_tokens(publisher):
        if token in left and token in right:
            return True
    return False


def find_match(
    name: str,
    candidates: Iterable[T],
    candidate_name: Callable[[T], str],
    publisher: Optional[str] = None,
) -> Optional[T]:
    """Return the first candidate that reconciles with ``name``."""
    for candidate in candidates:
        if are_same_application(name, candidate_name(candidate), publisher):
            return candidate
    return None
