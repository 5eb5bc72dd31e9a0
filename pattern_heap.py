"""
Bounded Top-K Pattern Collection
================================
Keeps the K highest-support frequent patterns discovered while mining a
partition, with optional removal of patterns made redundant by an
equal-support sub-pattern or super-pattern.

- Pattern: ordered itemset + support count
- BoundedPatternCollector: min-at-top heap with eviction, subsumption index
  and merge of a child collector extended by one attribute
"""

import heapq
import itertools
from collections import defaultdict


# =============================================================================
# PATTERN
# =============================================================================

class Pattern:
    """
    Frequent pattern: an ordered sequence of attribute ids and its support.
    Ranking uses support only; equality and hashing use items and support.
    """

    __slots__ = ['_items', '_support']

    def __init__(self, items=(), support=0):
        if support < 0:
            raise ValueError(f'support must be non-negative, got {support}')
        self._items = tuple(items)
        self._support = int(support)

    @property
    def items(self):
        return self._items

    @property
    def support(self):
        return self._support

    @property
    def length(self):
        return len(self._items)

    def __len__(self):
        return len(self._items)

    def is_sub_pattern_of(self, other):
        """True if every item of this pattern appears in `other`."""
        if len(self._items) > len(other._items):
            return False
        return set(self._items).issubset(other._items)

    def extend(self, attribute, support):
        """
        Return a copy with `attribute` appended and support replaced.
        Caller guarantees support does not grow.
        """
        return Pattern(self._items + (attribute,), support)

    def compare_to(self, other):
        if self._support == other._support:
            return 0
        return 1 if self._support > other._support else -1

    def __lt__(self, other):
        return self._support < other._support

    def __le__(self, other):
        return self._support <= other._support

    def __gt__(self, other):
        return self._support > other._support

    def __ge__(self, other):
        return self._support >= other._support

    def __eq__(self, other):
        if not isinstance(other, Pattern):
            return NotImplemented
        return self._items == other._items and self._support == other._support

    def __hash__(self):
        return hash((self._items, self._support))

    def __repr__(self):
        return f'Pattern({list(self._items)!r}, support={self._support})'

    def to_dict(self):
        return {'items': list(self._items), 'support': self._support}


# =============================================================================
# BOUNDED COLLECTOR
# =============================================================================

class BoundedPatternCollector:
    """
    Fixed-capacity collection of the highest-support patterns.

    Patterns live in a min-heap keyed by support so the eviction candidate
    is always at the top. Entries removed by subsumption are dropped lazily
    from the heap; `_live` is the authoritative retained set.

    With `subpattern_check` enabled, live patterns are also bucketed by exact
    support, and a candidate is compared only against its own bucket.
    """

    def __init__(self, max_size, subpattern_check=False):
        if max_size <= 0:
            raise ValueError(f'max_size must be positive, got {max_size}')
        self._max_size = int(max_size)
        self._subpattern_check = bool(subpattern_check)
        self._heap = []
        self._live = {}
        self._index = defaultdict(dict)
        self._seq = itertools.count()

    @property
    def max_size(self):
        return self._max_size

    @property
    def subpattern_check(self):
        return self._subpattern_check

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def count(self):
        return len(self._live)

    def __len__(self):
        return len(self._live)

    def is_full(self):
        return len(self._live) == self._max_size

    def least_support(self):
        """Lowest support among retained patterns, 0 when empty."""
        self._drop_stale()
        if not self._heap:
            return 0
        return self._heap[0][0]

    def addable(self, support):
        """
        Cheap pre-filter: would a pattern with this support pass the
        capacity/threshold check in insert()?
        """
        if len(self._live) < self._max_size:
            return True
        return support > self.least_support()

    def ranked_contents(self):
        """
        Yield retained patterns, highest support first.
        The snapshot is taken on first iteration; re-derive after mutating.
        """
        entries = sorted(self._live.items(), key=lambda kv: (-kv[1].support, kv[0]))
        for _, pattern in entries:
            yield pattern

    def __iter__(self):
        return self.ranked_contents()

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def insert(self, pattern):
        """
        Offer a pattern. Returns True if it is retained afterwards.
        """
        if len(pattern) == 0:
            return False

        if self.is_full():
            if pattern.support <= self.least_support():
                return False
            admitted, replaced = self._add_pattern(pattern)
            if admitted and not replaced:
                self._evict_least()
            return admitted

        admitted, _ = self._add_pattern(pattern)
        return admitted

    def merge_all(self, child, attribute, attribute_support):
        """
        Fold every pattern retained by `child`, extended with `attribute`,
        into this collector. Support of each extension is capped at
        `attribute_support`. `child` is left untouched.
        """
        merged = 0
        for pattern in list(child.ranked_contents()):
            support = min(attribute_support, pattern.support)
            if self.addable(support):
                if self.insert(pattern.extend(attribute, support)):
                    merged += 1
        return merged

    def _add_pattern(self, pattern):
        """
        Push a pattern, applying the subsumption rule when enabled.
        Returns (admitted, replaced_existing).
        """
        if not self._subpattern_check:
            self._push(pattern)
            return True, False

        bucket = self._index.get(pattern.support)
        redundant = []
        if bucket:
            for seq, existing in bucket.items():
                if pattern.is_sub_pattern_of(existing):
                    return False, False
                if existing.is_sub_pattern_of(pattern):
                    redundant.append(seq)

        # More specific pattern takes the place of every general one, so
        # count drops by len(redundant) - 1 when several are replaced
        for seq in redundant:
            self._discard(seq)
        self._push(pattern)
        if len(self._heap) > 2 * self._max_size:
            self._compact()
        return True, bool(redundant)

    def _push(self, pattern):
        seq = next(self._seq)
        heapq.heappush(self._heap, (pattern.support, seq, pattern))
        self._live[seq] = pattern
        if self._subpattern_check:
            self._index[pattern.support][seq] = pattern

    def _discard(self, seq):
        pattern = self._live.pop(seq)
        if self._subpattern_check:
            bucket = self._index[pattern.support]
            del bucket[seq]
            if not bucket:
                del self._index[pattern.support]

    def _evict_least(self):
        self._drop_stale()
        _, seq, _ = heapq.heappop(self._heap)
        self._discard(seq)

    def _compact(self):
        """Rebuild the heap from live entries only."""
        self._heap = [entry for entry in self._heap if entry[1] in self._live]
        heapq.heapify(self._heap)

    def _drop_stale(self):
        heap = self._heap
        while heap and heap[0][1] not in self._live:
            heapq.heappop(heap)

    def __repr__(self):
        return (f'BoundedPatternCollector(max_size={self._max_size}, '
                f'count={self.count()}, least_support={self.least_support()}, '
                f'subpattern_check={self._subpattern_check})')
