"""Label similarity scoring for tag and term matching.

Scores are edit-distance based and expressed on a 0-100 scale, the scale
the unification engine reports to operators ("textual similarity of 86%").
"""

import re
import unicodedata
from typing import List, Optional, Tuple


def strip_diacritics(text: str) -> str:
    """Remove combining accents: "Preços" -> "Precos"."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_term(text: str) -> str:
    """Normalize a term for natural-key lookups.

    Lowercases, strips diacritics and collapses whitespace. Used for
    `term_normalized` and `name_normalized`.

    Args:
        text: Raw term

    Returns:
        Normalized term ("" for None or blank input)
    """
    if not text:
        return ""
    text = strip_diacritics(text.lower())
    return re.sub(r"\s+", " ", text).strip()


def fold_label(text: str) -> str:
    """Fold a label for spelling comparisons.

    Same as normalize_term, then drops spaces, hyphens and underscores, so
    "Pós-Graduação", "pos graduacao" and "POS_GRADUACAO" all fold to
    "posgraduacao".
    """
    return re.sub(r"[\s_\-]+", "", normalize_term(text))


def edit_distance(s1: str, s2: str) -> int:
    """Calculate Levenshtein edit distance between two strings.

    Args:
        s1: First string
        s2: Second string

    Returns:
        Edit distance (number of insertions, deletions and substitutions)
    """
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)

    # Dynamic programming approach, two rolling rows
    previous = list(range(len(s2) + 1))
    for i in range(1, len(s1) + 1):
        current = [i] + [0] * len(s2)
        for j in range(1, len(s2) + 1):
            cost = 0 if s1[i - 1] == s2[j - 1] else 1
            current[j] = min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            )
        previous = current

    return previous[len(s2)]


def similarity_score(a: str, b: str) -> float:
    """Edit-distance similarity between two labels, in [0, 100].

    Both labels are lowercased and trimmed first. Two empty labels are
    identical (100); one empty label shares nothing with the other (0).
    The score is symmetric.

    Args:
        a: First label
        b: Second label

    Returns:
        100 * (1 - distance / max_len)
    """
    s1 = (a or "").lower().strip()
    s2 = (b or "").lower().strip()

    if not s1 and not s2:
        return 100.0
    if not s1 or not s2:
        return 0.0

    max_len = max(len(s1), len(s2))
    return 100.0 * (1.0 - edit_distance(s1, s2) / max_len)


def find_best_match(query: str, candidates: List[str],
                    threshold: float = 60.0) -> Optional[Tuple[str, float]]:
    """Find the best matching candidate for a query label.

    Args:
        query: Label to match
        candidates: Candidate labels
        threshold: Minimum score on the 0-100 scale (default: 60)

    Returns:
        Tuple of (best_match, score) if at or above threshold, None otherwise.
        Ties keep the earliest candidate.
    """
    if not query or not candidates:
        return None

    best_match = None
    best_score = -1.0

    for candidate in candidates:
        score = similarity_score(query, candidate)
        if score > best_score:
            best_score = score
            best_match = candidate

    if best_match is not None and best_score >= threshold:
        return (best_match, best_score)

    return None
