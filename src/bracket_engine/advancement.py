"""
Match resolution and winner propagation.

Resolving a match writes its winner into the successor slot. Editing a result
so that the winner changes invalidates everything the old winner touched
downstream: each affected match is cleared back to upcoming and the stale
entrant is removed from its slot, walking the forward links with an explicit
worklist. Nothing here mutates its inputs; callers get copies and apply them
with ``apply_resolution``.
"""
import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .errors import CascadeConflict, EntityNotFound, UnresolvableMatch
from .models import COMPLETED, KOB_MATCH, POOL_MATCH, Match, MatchRules

logger = logging.getLogger(__name__)

MatchMap = Dict[str, Match]


class ResolveResult:
    """Outcome of resolving (or clearing) one match.

    ``previous_match`` is the match as it was before, so aggregate owners can
    reverse its old contribution. ``cascade_clears`` lists every downstream
    match the cascade touched, in traversal order.
    """

    def __init__(self, updated_match, previous_match, next_match_patch=None, cascade_clears=None):
        self.updated_match = updated_match
        self.previous_match = previous_match
        self.next_match_patch = next_match_patch
        self.cascade_clears = cascade_clears or []

    @property
    def winner_changed(self):
        return self.previous_match.winner_participant != self.updated_match.winner_participant

    @property
    def touched_ids(self):
        ids = [self.updated_match.id]
        ids.extend(m.id for m in self.cascade_clears)
        if self.next_match_patch is not None:
            ids.append(self.next_match_patch.id)
        return list(dict.fromkeys(ids))

    def to_dict(self):
        return {
            'updated_match': self.updated_match.to_dict(),
            'next_match_patch': self.next_match_patch.to_dict() if self.next_match_patch else None,
            'cascade_clears': [m.to_dict() for m in self.cascade_clears],
        }


def _as_map(matches: Union[MatchMap, Sequence[Match]]) -> MatchMap:
    if isinstance(matches, dict):
        return matches
    return {m.id: m for m in matches}


def _lookup(matches: MatchMap, match_id: str) -> Match:
    match = matches.get(match_id)
    if match is None:
        raise EntityNotFound(f"Match {match_id} not found", match_id=match_id)
    return match


def determine_winner(score1, score2, allow_draw: bool = False) -> Optional[int]:
    """Return the winning slot (1 or 2); None for a draw when draws are allowed."""
    if score1 is None or score2 is None:
        raise UnresolvableMatch("Both scores are required")
    if score1 < 0 or score2 < 0:
        raise UnresolvableMatch(f"Scores cannot be negative ({score1}-{score2})")
    if score1 > score2:
        return 1
    if score2 > score1:
        return 2
    if allow_draw:
        return None
    raise UnresolvableMatch(f"Tied score {score1}-{score2} cannot decide an elimination match",
                            score1=score1, score2=score2)


def set_winner(set_score: Sequence[int], rules: MatchRules) -> Optional[int]:
    """Winner of a single set under first-to / win-by / cap rules, None if unfinished."""
    score1, score2 = set_score[0], set_score[1]
    if score1 is None or score2 is None:
        return None

    # Reaching the cap ends the set
    if score1 >= rules.cap or score2 >= rules.cap:
        if score1 == score2:
            return None
        return 1 if score1 > score2 else 2

    if score1 >= rules.first_to and score1 - score2 >= rules.win_by:
        return 1
    if score2 >= rules.first_to and score2 - score1 >= rules.win_by:
        return 2
    return None


def match_score_from_sets(set_scores: Sequence[Sequence[int]], rules: MatchRules) -> Tuple[int, int]:
    """
    Count sets won per side. Returns (sets_won1, sets_won2).

    Fixed set count: every set must be played and finished (a draw on sets is
    possible). Best-of: play stops once one side holds a majority.
    """
    if not set_scores:
        raise UnresolvableMatch("No set scores given")

    needed = math.ceil(rules.best_of / 2) if rules.best_of else None
    wins = [0, 0]
    for number, set_score in enumerate(set_scores, start=1):
        if needed is not None and max(wins) >= needed:
            raise UnresolvableMatch("Sets recorded after the match was decided", set_number=number)
        if len(set_score) < 2:
            raise UnresolvableMatch(f"Set {number} needs two scores")
        winner = set_winner(set_score, rules)
        if winner is None:
            raise UnresolvableMatch(f"Set {number} ({set_score[0]}-{set_score[1]}) is not finished",
                                    set_number=number)
        wins[winner - 1] += 1

    if needed is not None:
        if max(wins) < needed:
            raise UnresolvableMatch(f"Best of {rules.best_of} needs {needed} set wins")
    elif len(set_scores) != rules.num_sets:
        raise UnresolvableMatch(f"Expected {rules.num_sets} sets, got {len(set_scores)}")

    return wins[0], wins[1]


def _working_copy(matches: MatchMap, working: MatchMap, match_id: str) -> Match:
    if match_id not in working:
        working[match_id] = _lookup(matches, match_id).copy()
    return working[match_id]


def cascade_clear(matches: Union[MatchMap, Sequence[Match]], start_id: str,
                  working: Optional[MatchMap] = None) -> List[Match]:
    """
    Clear ``start_id`` and every downstream match its result propagated into.

    Uses an explicit worklist over the forward links. A completed match is
    reset to upcoming and its winner is removed from the successor slot; the
    walk continues while the successor itself was completed. Returns copies of
    every match changed, in traversal order.
    """
    matches = _as_map(matches)
    working = {} if working is None else working
    changed = []
    visited = set()
    worklist = [start_id]

    while worklist:
        match_id = worklist.pop()
        if match_id in visited:
            raise CascadeConflict(f"Match graph has a cycle through {match_id}", match_id=match_id)
        visited.add(match_id)

        match = _working_copy(matches, working, match_id)
        if match not in changed:
            changed.append(match)
        if match.status != COMPLETED:
            continue

        stale_winner = match.winner_participant
        match.reset_result()
        logger.debug(f"Cleared {match.id} (stale winner {stale_winner})")

        if match.next_match_id is None:
            continue
        if match.next_match_id in visited:
            raise CascadeConflict(f"Match graph has a cycle through {match.next_match_id}",
                                  match_id=match.next_match_id)
        successor = _working_copy(matches, working, match.next_match_id)
        if stale_winner is not None and successor.slot(match.next_slot) == stale_winner:
            successor.set_slot(match.next_slot, None)
            if successor not in changed:
                changed.append(successor)
        if successor.status == COMPLETED:
            worklist.append(successor.id)

    return changed


def _allows_draw(match: Match) -> bool:
    return match.match_type in (POOL_MATCH, KOB_MATCH) and match.next_match_id is None and match.rules.allows_draw


def resolve_match(matches: Union[MatchMap, Sequence[Match]], match_id: str, score1, score2,
                  set_scores: Optional[Sequence[Sequence[int]]] = None) -> ResolveResult:
    """
    Resolve a match into a winner and propagate it.

    If the match was already resolved and the new scores produce a different
    winner, every downstream match the old winner reached is cleared before
    the new winner is written into the successor slot. Re-resolving with the
    same winner only updates scores.
    """
    matches = _as_map(matches)
    original = _lookup(matches, match_id)
    if not original.is_ready:
        raise UnresolvableMatch(f"Match {match_id} is missing a participant", match_id=match_id)

    winner = determine_winner(score1, score2, allow_draw=_allows_draw(original))

    updated = original.copy()
    old_winner = original.winner_participant if original.status == COMPLETED else None
    updated.score1 = score1
    updated.score2 = score2
    updated.set_scores = [tuple(s) for s in set_scores] if set_scores else []
    updated.winner = winner
    updated.is_draw = winner is None
    updated.status = COMPLETED

    result = ResolveResult(updated, original.copy())
    if updated.next_match_id is None:
        return result

    new_winner = updated.winner_participant
    working = {}
    successor = _working_copy(matches, working, updated.next_match_id)
    if old_winner is not None and old_winner != new_winner and successor.status == COMPLETED:
        logger.info(f"Winner of {match_id} changed from {old_winner} to {new_winner}; "
                    f"clearing downstream from {successor.id}")
        result.cascade_clears = cascade_clear(matches, successor.id, working)
        successor = working[successor.id]

    successor.set_slot(updated.next_slot, new_winner)
    result.next_match_patch = successor
    logger.debug(f"Advanced {new_winner} from {match_id} into {successor.id} slot {updated.next_slot}")
    return result


def resolve_match_from_sets(matches: Union[MatchMap, Sequence[Match]], match_id: str,
                            set_scores: Sequence[Sequence[int]]) -> ResolveResult:
    """Resolve a match from finished set scores; the match score is sets won."""
    matches = _as_map(matches)
    match = _lookup(matches, match_id)
    sets1, sets2 = match_score_from_sets(set_scores, match.rules)
    return resolve_match(matches, match_id, sets1, sets2, set_scores=set_scores)


def clear_match(matches: Union[MatchMap, Sequence[Match]], match_id: str) -> ResolveResult:
    """Reverse a match result, clearing anything its winner reached downstream."""
    matches = _as_map(matches)
    original = _lookup(matches, match_id)
    working = {}
    changed = cascade_clear(matches, match_id, working)
    updated = working[match_id]
    cascade = [m for m in changed if m.id != match_id]
    return ResolveResult(updated, original.copy(), cascade_clears=cascade)


def apply_resolution(matches: MatchMap, result: ResolveResult) -> MatchMap:
    """Write a ResolveResult into a match map (in place) and return it."""
    for cleared in result.cascade_clears:
        matches[cleared.id] = cleared
    if result.next_match_patch is not None:
        matches[result.next_match_patch.id] = result.next_match_patch
    matches[result.updated_match.id] = result.updated_match
    return matches
