"""Tree builder: deterministic grouping of test results."""

from reportcore.tree.builder import (
    TreeData,
    add_leaf_statistic,
    default_leaf_factory,
    group_by_labels,
    group_by_labels_then_title_path,
    group_by_title_path,
    node_id,
    statistic_group_factory,
)

__all__ = [
    "TreeData",
    "add_leaf_statistic",
    "default_leaf_factory",
    "group_by_labels",
    "group_by_labels_then_title_path",
    "group_by_title_path",
    "node_id",
    "statistic_group_factory",
]
