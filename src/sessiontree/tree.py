"""Conversation tree reconstruction — forest, active path, and branch points.

Claude Code logs are append-only: retrying or editing a turn adds a sibling
under the same parent instead of rewriting history. Linking records by
uuid/parentUuid therefore yields a forest. The "active" conversation is found
by following, at every fork, the child whose subtree saw the most recent
activity.

All functions are pure and never mutate the forest once built. Traversals are
iterative, so sessions with thousands of chained messages are safe.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping

from sessiontree.models import BranchPoint, Message, MessageNode, RawRecord
from sessiontree.parser import decode_messages

logger = logging.getLogger("sessiontree.tree")


# ---------------------------------------------------------------------------
# Forest construction
# ---------------------------------------------------------------------------


def build_forest(messages: list[Message]) -> list[MessageNode]:
    """Link messages into a forest by parent_uuid.

    A message whose parent is missing from the batch becomes a root. When two
    messages share a uuid the later one wins, keeping the position of the
    first; children of either attach to the survivor.

    Children keep input order.
    """
    nodes_by_uuid: dict[str, MessageNode] = {}
    for message in messages:
        nodes_by_uuid[message.uuid] = MessageNode(entry=message)

    duplicates = len(messages) - len(nodes_by_uuid)
    if duplicates:
        logger.warning(
            "Collapsed %d duplicate message uuid(s); later records replaced earlier ones",
            duplicates,
        )

    roots: list[MessageNode] = []
    for node in nodes_by_uuid.values():
        parent_uuid = node.entry.parent_uuid
        if parent_uuid and parent_uuid != node.entry.uuid and parent_uuid in nodes_by_uuid:
            nodes_by_uuid[parent_uuid].children.append(node)
        else:
            roots.append(node)
    return roots


def build_message_tree(records: list[RawRecord]) -> list[MessageNode]:
    """Decode raw Claude Code records and build their forest."""
    return build_forest(decode_messages(records))


def find_duplicate_uuids(messages: list[Message]) -> dict[str, int]:
    """uuids that occur more than once, with their occurrence counts."""
    counts = Counter(m.uuid for m in messages)
    return {uuid: n for uuid, n in counts.items() if n > 1}


def iter_nodes(roots: list[MessageNode]):
    """Yield every node of the forest, depth-first, parents before children."""
    stack = list(reversed(roots))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


# ---------------------------------------------------------------------------
# Recency
# ---------------------------------------------------------------------------


def deepest_timestamps(roots: list[MessageNode]) -> dict[MessageNode, str]:
    """Latest timestamp anywhere in each node's subtree, for every node.

    Computed in a single bottom-up pass. ISO-8601 strings compare
    lexically in time order.
    """
    latest: dict[MessageNode, str] = {}
    # Reversed pre-order visits every child before its parent
    for node in reversed(list(iter_nodes(roots))):
        ts = node.entry.timestamp
        for child in node.children:
            if latest[child] > ts:
                ts = latest[child]
        latest[node] = ts
    return latest


def _most_recent(nodes: list[MessageNode], latest: Mapping[MessageNode, str]) -> MessageNode:
    # Strict comparison: on ties the earliest node in input order wins
    best = nodes[0]
    for node in nodes[1:]:
        if latest[node] > latest[best]:
            best = node
    return best


def _descend(node: MessageNode, latest: Mapping[MessageNode, str]) -> list[Message]:
    path = [node.entry]
    while node.children:
        node = _most_recent(node.children, latest)
        path.append(node.entry)
    return path


# ---------------------------------------------------------------------------
# Active path and branch points
# ---------------------------------------------------------------------------


def resolve_active_path(roots: list[MessageNode]) -> list[Message]:
    """The canonical linear conversation.

    Starts at the root with the most recent subtree and, at every fork,
    descends into the child with the most recent subtree until a leaf.
    """
    if len(roots) == 0:
        return []
    latest = deepest_timestamps(roots)
    return _descend(_most_recent(roots, latest), latest)


def get_branch_points(
    roots: list[MessageNode], active_path: list[Message],
) -> list[BranchPoint]:
    """Every fork along the active path, with each alternate flattened.

    Paths are ordered newest-first by subtree recency, so paths[0] is always
    the continuation already shown in active_path.
    """
    latest = deepest_timestamps(roots)
    nodes_by_uuid = {node.entry.uuid: node for node in latest}

    branch_points: list[BranchPoint] = []
    for index, message in enumerate(active_path):
        node = nodes_by_uuid.get(message.uuid)
        if node is None or len(node.children) <= 1:
            continue
        # sorted() is stable under reverse=True, so ties keep input order
        ordered = sorted(node.children, key=lambda child: latest[child], reverse=True)
        branch_points.append(BranchPoint(
            message_index=index,
            fork_message_uuid=message.uuid,
            paths=[_descend(child, latest) for child in ordered],
        ))
    return branch_points


# ---------------------------------------------------------------------------
# Path switching
# ---------------------------------------------------------------------------


def apply_path_selections(
    active_path: list[Message],
    branch_points: list[BranchPoint],
    selections: Mapping[str, int],
) -> list[Message]:
    """The conversation to display given per-fork path choices.

    selections maps fork uuid -> path index. The first fork (in path order)
    switched away from index 0 replaces everything after it; forks further
    down the original path no longer exist in that view. Indexes past the
    last path are clamped.
    """
    for bp in branch_points:
        selected = _selected_index(bp, selections)
        if selected != 0:
            return active_path[: bp.message_index + 1] + bp.paths[selected]
    return list(active_path)


def visible_branch_points(
    branch_points: list[BranchPoint], selections: Mapping[str, int],
) -> list[BranchPoint]:
    """Branch points still reachable in the switched view."""
    visible: list[BranchPoint] = []
    for bp in branch_points:
        visible.append(bp)
        if _selected_index(bp, selections) != 0:
            break
    return visible


def _selected_index(bp: BranchPoint, selections: Mapping[str, int]) -> int:
    selected = selections.get(bp.fork_message_uuid, 0)
    return max(0, min(selected, len(bp.paths) - 1))
