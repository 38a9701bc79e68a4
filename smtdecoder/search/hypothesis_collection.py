import logging
from typing import Dict, Hashable, Iterator, List, Optional

from smtdecoder.search.hypothesis import Hypothesis, HypothesisArena

logger = logging.getLogger(__name__)


class HypothesisCollection:
    """
    A set of competing hypotheses (one stack, or one label of a chart cell) with
    recombination and pruning.

    Hypotheses are recombined as they are added: of two hypotheses with equal fingerprints
    only the one with the higher `total_score` stays in the collection, the first one added
    on a tie.  The other is marked as recombined into it and becomes one of its `arcs`.
    """

    def __init__(self, arena: HypothesisArena) -> None:
        self._arena = arena
        self._by_fingerprint: Dict[Hashable, int] = {}
        self.num_recombined = 0
        self.num_pruned = 0

    def add(self, hypothesis: Hypothesis) -> bool:
        """
        Adds a hypothesis (which must already be in the arena).  Returns whether it is in the
        collection afterwards.
        """
        fingerprint = hypothesis.fingerprint
        existing_index = self._by_fingerprint.get(fingerprint)
        if existing_index is None:
            self._by_fingerprint[fingerprint] = hypothesis.index
            return True

        existing = self._arena[existing_index]
        if hypothesis.total_score > existing.total_score:
            winner, loser = hypothesis, existing
            self._by_fingerprint[fingerprint] = hypothesis.index
        else:
            winner, loser = existing, hypothesis
        loser.recombined_into = winner.index
        winner.arcs.append(loser.index)
        winner.arcs.extend(loser.arcs)
        loser.arcs = []
        self.num_recombined += 1
        return winner is hypothesis

    def prune(self, max_size: int = 0, beam_width: Optional[float] = None) -> int:
        """
        Removes every hypothesis scoring more than `beam_width` below the best one, then all
        but the best `max_size`.  `max_size <= 0` and `beam_width=None` disable the
        respective limit.  Returns the number of hypotheses removed.
        """
        ranked = self.sorted()
        if not ranked:
            return 0
        keep = len(ranked)
        if beam_width is not None:
            threshold = ranked[0].total_score - beam_width
            keep = sum(1 for hypothesis in ranked if hypothesis.total_score >= threshold)
        if max_size > 0:
            keep = min(keep, max_size)
        for hypothesis in ranked[keep:]:
            hypothesis.pruned = True
            del self._by_fingerprint[hypothesis.fingerprint]
        removed = len(ranked) - keep
        self.num_pruned += removed
        return removed

    def sorted(self) -> List[Hypothesis]:
        """
        The hypotheses best first, ties broken by creation order.
        """
        hypotheses = [self._arena[index] for index in self._by_fingerprint.values()]
        hypotheses.sort(key=lambda hypothesis: (-hypothesis.total_score, hypothesis.index))
        return hypotheses

    def best(self) -> Optional[Hypothesis]:
        ranked = self.sorted()
        return ranked[0] if ranked else None

    def __iter__(self) -> Iterator[Hypothesis]:
        return iter(self.sorted())

    def __len__(self) -> int:
        return len(self._by_fingerprint)

    def __bool__(self) -> bool:
        return bool(self._by_fingerprint)
