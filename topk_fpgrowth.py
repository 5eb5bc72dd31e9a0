"""
Top-K FP-Growth
===============
Bottom-up FP-growth that keeps only the K highest-support patterns, using
BoundedPatternCollector at every level of the recursion.

- Item support counting (mlxtend one-hot encoding)
- FP-tree with header chains and conditional pattern bases
- Single-partition top-K growth
- Partitioned (grouped) mining with fan-in of the partition collectors
"""

import math
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor

import pandas as pd
from mlxtend.preprocessing import TransactionEncoder

from pattern_heap import BoundedPatternCollector, Pattern


# =============================================================================
# ITEM COUNTING
# =============================================================================

def count_item_supports(transactions):
    """
    Count the number of transactions containing each item.
    Repeated items inside one transaction count once.
    """
    transactions = [t for t in transactions if t]
    if not transactions:
        return {}

    te = TransactionEncoder()
    te_ary = te.fit_transform(transactions)
    df = pd.DataFrame(te_ary, columns=te.columns_)

    counts = df.sum(axis=0)
    return {item: int(count) for item, count in counts.items()}


def build_item_order(item_supports, min_support_count):
    """
    Rank frequent items by descending support (ties by item text).
    Returns {item: rank}, rank 0 being the most frequent item.
    """
    frequent = [(item, sup) for item, sup in item_supports.items() if sup >= min_support_count]
    frequent.sort(key=lambda x: (-x[1], str(x[0])))
    return {item: rank for rank, (item, _) in enumerate(frequent)}


def order_transaction(transaction, item_order):
    """Frequent items of a transaction, deduplicated and sorted by rank."""
    return sorted({item for item in transaction if item in item_order}, key=item_order.__getitem__)


# =============================================================================
# FP-TREE
# =============================================================================

class FPNode:
    __slots__ = ['item', 'count', 'parent', 'children', 'link']

    def __init__(self, item, count, parent):
        self.item = item
        self.count = count
        self.parent = parent
        self.children = {}
        self.link = None


class FPTree:
    """
    Prefix tree over rank-ordered transactions.
    header_table maps each item to the first node of its node chain.
    """

    def __init__(self, item_order):
        self.item_order = item_order
        self.root = FPNode(None, 0, None)
        self.header_table = {}
        self._tails = {}
        self._supports = defaultdict(int)

    def add_path(self, items, count=1):
        """Insert a path of items already sorted by rank."""
        node = self.root
        for item in items:
            child = node.children.get(item)
            if child is None:
                child = FPNode(item, 0, node)
                node.children[item] = child
                if item in self._tails:
                    self._tails[item].link = child
                else:
                    self.header_table[item] = child
                self._tails[item] = child
            child.count += count
            self._supports[item] += count
            node = child

    def is_empty(self):
        return not self.root.children

    def item_support(self, item):
        return self._supports.get(item, 0)

    def header_items(self):
        """Items in the tree, most frequent first."""
        return sorted(self.header_table, key=self.item_order.__getitem__)

    def conditional_base(self, item):
        """
        Prefix paths leading to `item`, each weighted by the count of the
        item's node at the end of the path.
        """
        base = []
        node = self.header_table.get(item)
        while node is not None:
            path = []
            parent = node.parent
            while parent is not None and parent.item is not None:
                path.append(parent.item)
                parent = parent.parent
            if path:
                path.reverse()
                base.append((path, node.count))
            node = node.link
        return base

    def conditional_tree(self, item, min_support_count):
        """Build the conditional FP-tree of `item`."""
        base = self.conditional_base(item)

        local = defaultdict(int)
        for path, count in base:
            for it in path:
                local[it] += count

        order = build_item_order(local, min_support_count)
        tree = FPTree(order)
        for path, count in base:
            filtered = sorted((it for it in path if it in order), key=order.__getitem__)
            if filtered:
                tree.add_path(filtered, count)
        return tree


def build_tree(transactions, item_order):
    tree = FPTree(item_order)
    for t in transactions:
        ordered = order_transaction(t, item_order)
        if ordered:
            tree.add_path(ordered)
    return tree


# =============================================================================
# TOP-K GROWTH
# =============================================================================

def growth_top_k(tree, k, min_support_count, subpattern_check=True, attributes=None):
    """
    Mine the K highest-support patterns of `tree`.

    Each header item's conditional tree is mined into a child collector,
    which is then folded into this level's collector extended by the item.
    Items whose support cannot beat the current threshold are skipped
    without building their conditional tree.

    `attributes` restricts the top level to a subset of header items, as
    used by partitioned mining.
    """
    collector = BoundedPatternCollector(k, subpattern_check)

    for item in tree.header_items():
        if attributes is not None and item not in attributes:
            continue

        item_support = tree.item_support(item)
        if item_support < min_support_count:
            continue
        if not collector.addable(item_support):
            continue

        conditional = tree.conditional_tree(item, min_support_count)
        if not conditional.is_empty():
            child = growth_top_k(conditional, k, min_support_count, subpattern_check)
            collector.merge_all(child, item, item_support)

        collector.insert(Pattern([item], item_support))

    return collector


def _check_min_support(min_support_count):
    if min_support_count < 1:
        raise ValueError(f'min_support_count must be at least 1, got {min_support_count}')


def mine_top_k(transactions, k, min_support_count=1, subpattern_check=True):
    """
    Mine the top-K frequent patterns of a transaction list in one pass.
    Returns the filled BoundedPatternCollector.
    """
    _check_min_support(min_support_count)
    if not transactions:
        return BoundedPatternCollector(k, subpattern_check)

    item_order = build_item_order(count_item_supports(transactions), min_support_count)
    tree = build_tree(transactions, item_order)
    return growth_top_k(tree, k, min_support_count, subpattern_check)


# =============================================================================
# PARTITIONED MINING
# =============================================================================

def group_items(item_order, num_groups):
    """
    Split the ranked item list into at most `num_groups` contiguous groups.
    """
    if num_groups < 1:
        raise ValueError(f'num_groups must be at least 1, got {num_groups}')

    ranked = sorted(item_order, key=item_order.__getitem__)
    if not ranked:
        return []

    size = math.ceil(len(ranked) / num_groups)
    return [set(ranked[i:i + size]) for i in range(0, len(ranked), size)]


def group_dependent_transactions(transactions, item_order, group):
    """
    For every transaction, the rank-ordered prefix ending at its last item
    that belongs to `group`. Transactions without a group item are dropped.
    """
    dependent = []
    for t in transactions:
        ordered = order_transaction(t, item_order)
        for pos in range(len(ordered) - 1, -1, -1):
            if ordered[pos] in group:
                dependent.append(ordered[:pos + 1])
                break
    return dependent


def mine_top_k_partitioned(transactions, k, min_support_count=1, subpattern_check=True,
                           num_groups=2, max_workers=None):
    """
    Mine top-K patterns with the item list split into groups.

    Each group mines only the patterns whose least frequent item belongs to
    it, over its own group-dependent transactions and into its own
    collector. Partition collectors share nothing and run on a thread pool;
    their contents are then inserted into one final collector.
    """
    _check_min_support(min_support_count)
    if num_groups < 1:
        raise ValueError(f'num_groups must be at least 1, got {num_groups}')
    final = BoundedPatternCollector(k, subpattern_check)
    if not transactions:
        return final

    item_order = build_item_order(count_item_supports(transactions), min_support_count)
    groups = group_items(item_order, num_groups)

    def mine_group(group):
        tree = FPTree(item_order)
        for path in group_dependent_transactions(transactions, item_order, group):
            tree.add_path(path)
        return growth_top_k(tree, k, min_support_count, subpattern_check, attributes=group)

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        partials = list(pool.map(mine_group, groups))

    # Fan-in
    for partial in partials:
        for pattern in partial.ranked_contents():
            if final.addable(pattern.support):
                final.insert(pattern)

    return final
