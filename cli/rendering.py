"""Utilities for rendering sitemaps, links and tasks in the CLI."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from sitemapper.models import (
    ContentStatus,
    ContentType,
    GenerationNodeInfo,
    GenerationTask,
    NodeGenerationStatus,
    PlannedLink,
    SitemapNode,
)


def render_tree(
    roots: List[SitemapNode],
    generation: Optional[Dict[int, NodeGenerationStatus]] = None,
    link_counts: Optional[Dict[int, Tuple[int, int]]] = None,
) -> str:
    """Render a built sitemap forest as an ASCII tree.

    Args:
        roots: Output of :func:`sitemapper.hierarchy.build_tree`.
        generation: Optional per-node generation status, shown as a suffix.
        link_counts: Optional ``(outgoing, incoming)`` link counts per node.

    Returns:
        String representation of the tree.
    """
    generation = generation or {}
    link_counts = link_counts or {}
    lines: List[str] = []

    def _label(node: SitemapNode) -> str:
        label = f"{_get_icon(node)} {node.title}  /{node.slug.strip('/')}  [{node.id}]"
        if node.id in link_counts:
            out, inc = link_counts[node.id]
            label += f"  ↗{out} ↙{inc}"
        if node.id in generation:
            label += f"  ({generation[node.id].value})"
        return label

    def _render_node(node: SitemapNode, prefix: str, is_last: bool, is_top: bool) -> None:
        if is_top:
            lines.append(_label(node))
            child_prefix = ""
        else:
            connector = "└── " if is_last else "├── "
            lines.append(f"{prefix}{connector}{_label(node)}")
            child_prefix = prefix + ("    " if is_last else "│   ")

        count = len(node.children)
        for i, child in enumerate(node.children):
            _render_node(child, child_prefix, i == count - 1, False)

    for root in roots:
        _render_node(root, "", True, True)
    return "\n".join(lines)


def render_links(links: List[PlannedLink], titles: Dict[int, str]) -> str:
    lines = []
    for link in sorted(links, key=lambda l: l.id):
        source = titles.get(link.source_node_id, f"#{link.source_node_id}")
        target = titles.get(link.target_node_id, f"#{link.target_node_id}")
        anchor = f"  “{link.anchor_text}”" if link.anchor_text else ""
        confidence = f"  {link.confidence:.0%}" if link.confidence is not None else ""
        lines.append(
            f"  {link.id:>5}  [{link.status.value:<8}] {source} → {target}"
            f"{anchor}{confidence}  ({link.source.value})"
        )
    return "\n".join(lines)


def render_task(task: GenerationTask, visible: Optional[List[GenerationNodeInfo]] = None, width: int = 30) -> str:
    """One progress bar line plus the nodes worth showing."""
    filled = int(round(task.progress() * width))
    bar = "█" * filled + "░" * (width - filled)
    lines = [
        f"Task {task.id}  [{task.status.value}]",
        f"  {bar}  {task.processed_nodes}/{task.total_nodes}"
        f"  failed={task.failed_nodes} skipped={task.skipped_nodes}",
    ]
    if task.error:
        lines.append(f"  error: {task.error}")
    for info in visible or []:
        title = info.title or f"#{info.node_id}"
        detail = f"  {info.error}" if info.error else ""
        lines.append(f"    {_STATUS_ICONS.get(info.status, '•')} {title} ({info.status.value}){detail}")
    return "\n".join(lines)


_STATUS_ICONS = {
    NodeGenerationStatus.PENDING: "⏳",
    NodeGenerationStatus.GENERATING: "✍️",
    NodeGenerationStatus.PUBLISHING: "📤",
    NodeGenerationStatus.COMPLETED: "✅",
    NodeGenerationStatus.FAILED: "❌",
    NodeGenerationStatus.SKIPPED: "⏭️",
}


def _get_icon(node: SitemapNode) -> str:
    if node.is_root:
        return "🏠"
    if node.content_status == ContentStatus.PUBLISHED:
        return "🌐"
    icons = {
        ContentType.PAGE: "📄",
        ContentType.POST: "📝",
        ContentType.NONE: "📁",
    }
    return icons.get(node.content_type, "📦")
