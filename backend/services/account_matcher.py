"""Fuzzy matching of provider accounts across a rotated connection.

When a user re-links a connection the provider may hand back fresh
account ids.  :func:`find_matching_account` finds which previously known
account a new descriptor refers to, so its canonical link can be carried
over instead of asking the user to set it up again.
"""

from dataclasses import dataclass

from services.activity_merger import normalize_name

SIMILARITY_THRESHOLD = 0.8


@dataclass(frozen=True)
class AccountDescriptor:
    """The identifying fields of one provider account."""

    external_id: str | None
    name: str | None
    institution_id: str | None = None
    account_type: str | None = None

    @property
    def fingerprint(self) -> str | None:
        name = normalize_name(self.name)
        if not self.institution_id or not name:
            return None
        return f"{self.institution_id.lower()}:{name}:{(self.account_type or '').lower()}"


def name_similarity(a: str | None, b: str | None) -> float:
    """Shared-character ratio of two normalized names, in ``[0, 1]``."""
    left = normalize_name(a)
    right = normalize_name(b)
    if not left or not right:
        return 0.0
    shared = len(set(left) & set(right))
    return shared / max(len(left), len(right))


def names_similar(a: str | None, b: str | None, threshold: float = SIMILARITY_THRESHOLD) -> bool:
    """True when names are equal, one contains the other, or similarity clears the threshold."""
    left = normalize_name(a)
    right = normalize_name(b)
    if not left or not right:
        return False
    if left == right or left in right or right in left:
        return True
    return name_similarity(left, right) >= threshold


def find_matching_account(
    target: AccountDescriptor, candidates: list[AccountDescriptor]
) -> AccountDescriptor | None:
    """Return the single best candidate for ``target``, or None.

    Tiers, strongest first: exact external id, fingerprint equality,
    same-institution similar name.  Within the name tier the highest
    similarity wins; ties go to the earlier candidate.
    """
    if target.external_id:
        for candidate in candidates:
            if candidate.external_id == target.external_id:
                return candidate

    target_fp = target.fingerprint
    if target_fp is not None:
        for candidate in candidates:
            if candidate.fingerprint == target_fp:
                return candidate

    if not target.institution_id:
        return None

    best: AccountDescriptor | None = None
    best_score = -1.0
    for candidate in candidates:
        if (candidate.institution_id or "").lower() != target.institution_id.lower():
            continue
        if not names_similar(candidate.name, target.name):
            continue
        score = name_similarity(candidate.name, target.name)
        if score > best_score:
            best, best_score = candidate, score
    return best
