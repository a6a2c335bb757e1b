"""Hierarchical grouping of test results.

Builds navigable trees by label values, by title path segments, or by
labels first with title paths nested inside each label group. Group ids
are content-addressed, so the same path always yields the same id.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from reportcore.model.results import STATUS_ORDER, TestResult, first_label_value


LeafFactory = Callable[[TestResult], dict[str, Any]]
GroupFactory = Callable[[str | None, str], dict[str, Any]]
AddLeafToGroup = Callable[[dict[str, Any], dict[str, Any]], None]


@dataclass
class TreeData:
    """Grouping output.

    ``root`` holds the ids of top-level groups and leaves; every id in any
    ``groups``/``leaves`` list has an entry in ``groups_by_id`` or
    ``leaves_by_id``.
    """

    root: dict[str, list[str]] = field(default_factory=lambda: {"groups": [], "leaves": []})
    groups_by_id: dict[str, dict[str, Any]] = field(default_factory=dict)
    leaves_by_id: dict[str, dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": {"groups": list(self.root["groups"]), "leaves": list(self.root["leaves"])},
            "groupsById": self.groups_by_id,
            "leavesById": self.leaves_by_id,
        }


def node_id(name: str, parent_id: str | None = None) -> str:
    """Deterministic group id: md5 of ``parent_id + "." + name``."""
    key = f"{parent_id}.{name}" if parent_id else name
    return hashlib.md5(key.encode("utf-8")).hexdigest()


def default_leaf_factory(tr: TestResult) -> dict[str, Any]:
    return {
        "nodeId": tr.id,
        "name": tr.name,
        "status": tr.status,
        "duration": tr.duration,
        "retry": bool(tr.retries),
        "retriesCount": len(tr.retries),
    }


def statistic_group_factory(parent_id: str | None, name: str) -> dict[str, Any]:
    """Group factory that starts a per-status statistic."""
    return {"statistic": {"total": 0}}


def add_leaf_statistic(group: dict[str, Any], leaf: dict[str, Any]) -> None:
    """Merge function counting leaves per status into ``group["statistic"]``."""
    statistic = group.setdefault("statistic", {"total": 0})
    status = leaf.get("status")
    if status in STATUS_ORDER:
        statistic[status] = statistic.get(status, 0) + 1
    statistic["total"] = statistic.get("total", 0) + 1


class _TreeBuilder:
    """Accumulates groups and leaves while results are attached."""

    def __init__(
        self,
        leaf_factory: LeafFactory | None,
        group_factory: GroupFactory | None,
        add_leaf_to_group: AddLeafToGroup | None,
    ) -> None:
        self.leaf_factory = leaf_factory or default_leaf_factory
        self.group_factory = group_factory
        self.add_leaf_to_group = add_leaf_to_group
        self.tree = TreeData()

    def child_group(self, parent_id: str | None, name: str) -> str:
        """Return the id of the ``name`` group under ``parent_id``, creating it."""
        group_id = node_id(name, parent_id)
        if group_id in self.tree.groups_by_id:
            return group_id

        group: dict[str, Any] = {}
        if self.group_factory is not None:
            group.update(self.group_factory(parent_id, name))
        group.update({"nodeId": group_id, "name": name, "groups": [], "leaves": []})
        self.tree.groups_by_id[group_id] = group

        siblings = (
            self.tree.groups_by_id[parent_id]["groups"]
            if parent_id
            else self.tree.root["groups"]
        )
        siblings.append(group_id)
        return group_id

    def attach_leaf(self, tr: TestResult, path: Sequence[str]) -> None:
        """Attach ``tr`` under the last group of ``path`` (root when empty)."""
        leaf = dict(self.leaf_factory(tr))
        leaf["nodeId"] = tr.id
        self.tree.leaves_by_id[tr.id] = leaf

        parent = self.tree.groups_by_id[path[-1]] if path else self.tree.root
        if tr.id not in parent["leaves"]:
            parent["leaves"].append(tr.id)

        if self.add_leaf_to_group is not None:
            for group_id in path:
                self.add_leaf_to_group(self.tree.groups_by_id[group_id], leaf)

    def label_path(
        self, tr: TestResult, label_names: Sequence[str], parent_id: str | None = None,
    ) -> list[str]:
        path: list[str] = []
        for label_name in label_names:
            value = first_label_value(tr, label_name)
            if value is None:
                continue
            parent_id = self.child_group(parent_id, value)
            path.append(parent_id)
        return path

    def title_path(self, tr: TestResult, parent_id: str | None = None) -> list[str]:
        path: list[str] = []
        for segment in tr.title_path:
            parent_id = self.child_group(parent_id, segment)
            path.append(parent_id)
        return path


def group_by_labels(
    results: Iterable[TestResult],
    label_names: Sequence[str],
    leaf_factory: LeafFactory | None = None,
    group_factory: GroupFactory | None = None,
    add_leaf_to_group: AddLeafToGroup | None = None,
) -> TreeData:
    """Group results by the values of ``label_names``, in that order.

    Each present label value opens (or reuses) a group under the previous
    one; a missing label skips its level. Results without any of the
    labels become leaves of the root.
    """
    builder = _TreeBuilder(leaf_factory, group_factory, add_leaf_to_group)
    for tr in results:
        builder.attach_leaf(tr, builder.label_path(tr, label_names))
    return builder.tree


def group_by_title_path(
    results: Iterable[TestResult],
    leaf_factory: LeafFactory | None = None,
    group_factory: GroupFactory | None = None,
    add_leaf_to_group: AddLeafToGroup | None = None,
) -> TreeData:
    """Group results by their title path segments.

    A result with an empty title path is a direct leaf of the root.
    """
    builder = _TreeBuilder(leaf_factory, group_factory, add_leaf_to_group)
    for tr in results:
        builder.attach_leaf(tr, builder.title_path(tr))
    return builder.tree


def group_by_labels_then_title_path(
    results: Iterable[TestResult],
    label_names: Sequence[str],
    leaf_factory: LeafFactory | None = None,
    group_factory: GroupFactory | None = None,
    add_leaf_to_group: AddLeafToGroup | None = None,
) -> TreeData:
    """Group by labels first, then by title path within each label group.

    Title path groups are keyed under their label group, so the same
    segment under two label groups yields two distinct groups.
    """
    builder = _TreeBuilder(leaf_factory, group_factory, add_leaf_to_group)
    for tr in results:
        label_path = builder.label_path(tr, label_names)
        parent_id = label_path[-1] if label_path else None
        builder.attach_leaf(tr, label_path + builder.title_path(tr, parent_id))
    return builder.tree
