"""
Turn loosely typed batch references (ids, batch numbers, names, partial codes)
into canonical batch ids of the right kind.

Trainers type batch codes without knowing which track a batch belongs to, so
regular candidates that turn out to be placement-training batches are moved to
the placement list before the quiz is saved.
"""
import logging
import re
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from . import crud

logger = logging.getLogger("quiz-service")

CANONICAL_ID = re.compile(r"^[0-9a-f]{32}$", re.IGNORECASE)

# tried in order, first hit wins
MATCH_MODES = ("exact", "iexact", "contains")


@dataclass(frozen=True)
class BatchAssignment:
    regular: list[str]
    placement: list[str]
    batch_type: str
    unresolved: list[str] = field(default_factory=list)


def is_canonical_id(value: str) -> bool:
    return bool(CANONICAL_ID.match(value or ""))


def _dedupe(ids: list[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def resolve_one(db: Session, kind: str, candidate: str) -> str | None:
    if is_canonical_id(candidate):
        return candidate.lower()
    for mode in MATCH_MODES:
        found = crud.find_batch_by_identifier(db, kind, candidate, mode)
        if found:
            logger.info("Resolved %s candidate '%s' -> %s (%s)", kind, candidate, found, mode)
            return found
    return None


def resolve_candidates(db: Session, kind: str, candidates: list[str]) -> tuple[list[str], list[str]]:
    """Returns (resolved ids, unresolved raw candidates). Blank entries are skipped."""
    resolved: list[str] = []
    unresolved: list[str] = []
    for raw in candidates or []:
        candidate = str(raw or "").strip()
        if not candidate:
            continue
        batch_id = resolve_one(db, kind, candidate)
        if batch_id is None:
            logger.warning("Could not resolve %s batch candidate: '%s'", kind, raw)
            unresolved.append(str(raw))
        else:
            resolved.append(batch_id)
    return _dedupe(resolved), unresolved


def reconcile(db: Session, regular: list[str], placement: list[str]) -> tuple[list[str], list[str]]:
    """Move ids that live in the placement store out of the regular list."""
    placement_ids = crud.existing_batch_ids(db, "placement", regular)
    if placement_ids:
        moved = [i for i in regular if i in placement_ids]
        regular = [i for i in regular if i not in placement_ids]
        placement = _dedupe(placement + moved)
        logger.info("Moved %d id(s) from regular to placement batches: %s", len(moved), moved)

    # an id left in the regular list is not a placement batch
    overlap = set(regular) & set(placement)
    if overlap:
        placement = [i for i in placement if i not in overlap]
    return regular, placement


def final_batch_type(regular: list[str], placement: list[str], requested: str | None) -> str:
    if regular and placement:
        return "both"
    if placement:
        return "placement"
    if regular:
        return "noncrt"
    return requested or "placement"


def resolve_assignment(db: Session, requested_type: str | None, regular_candidates: list[str],
                       placement_candidates: list[str]) -> BatchAssignment:
    regular, unresolved_regular = resolve_candidates(db, "regular", regular_candidates)
    placement, unresolved_placement = resolve_candidates(db, "placement", placement_candidates)
    regular, placement = reconcile(db, regular, placement)
    batch_type = final_batch_type(regular, placement, requested_type)

    logger.info(
        "Resolved batches regular=%s placement=%s batch_type=%s", regular, placement, batch_type
    )
    return BatchAssignment(
        regular=regular,
        placement=placement,
        batch_type=batch_type,
        unresolved=unresolved_regular + unresolved_placement,
    )
