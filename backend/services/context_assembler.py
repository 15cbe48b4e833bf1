"""
Context assembly: renders a novel's metadata, characters, plot points and most
recent chapter summaries into one system message for a conversation.
"""

import logging
from typing import Dict, List

from core.errors import NotFoundError
from storage import NovelStore

logger = logging.getLogger("storyloom.context")

RECENT_CHAPTER_LIMIT = 5

ASSISTANT_INSTRUCTIONS = """\
You are the author's writing assistant for this novel. Use the information above \
to keep every answer consistent with the established world, characters and plot. \
When you suggest or draft content, respect the genre, tone and style guide, build \
on the recent chapters, and point out conflicts with existing facts instead of \
silently contradicting them. Answer in plain prose: do not use Markdown formatting \
and do not wrap the answer in JSON."""


class ContextAssembler:
    """Builds the per-call context snapshot for chat and generation requests.

    Read-only. Nothing it produces is persisted.
    """

    def __init__(self, store: NovelStore, recent_limit: int = RECENT_CHAPTER_LIMIT):
        self.store = store
        self.recent_limit = recent_limit

    def build(self, novel_id: str) -> Dict[str, str]:
        """Return the system message for ``novel_id``.

        Raises ``NotFoundError`` when the novel does not exist.
        """
        novel = self.store.get_novel(novel_id)
        if novel is None:
            raise NotFoundError(f"novel not found: {novel_id}")

        sections: List[str] = []

        header = ["# Novel", f"Title: {novel.title}"]
        if novel.genre:
            header.append(f"Genre: {novel.genre}")
        if novel.description:
            header.append(f"Description: {novel.description}")
        if novel.world_setting:
            header.append(f"World setting: {novel.world_setting}")
        if novel.style_guide:
            header.append(f"Style guide: {novel.style_guide}")
        sections.append("\n".join(header))

        characters = self.store.list_characters(novel_id)
        if characters:
            lines = ["# Characters"]
            lines.extend(f"- {c.name}: {c.description}" for c in characters)
            sections.append("\n".join(lines))

        plot_points = self.store.list_plot_points(novel_id)
        if plot_points:
            lines = ["# Plot points"]
            lines.extend(f"- {p.title}: {p.content}" for p in plot_points)
            sections.append("\n".join(lines))

        recent = list(reversed(self.store.recent_chapters(novel_id, self.recent_limit)))
        if recent:
            lines = ["# Recent chapters"]
            for chapter in recent:
                lines.append(f"## Chapter {chapter.order}: {chapter.title}")
                if chapter.summary:
                    lines.append(f"Summary: {chapter.summary}")
            sections.append("\n".join(lines))

        sections.append(ASSISTANT_INSTRUCTIONS)
        content = "\n\n".join(sections)
        logger.info(
            "context assembled novel_id=%s characters=%d plot_points=%d chapters=%d chars=%d",
            novel_id,
            len(characters),
            len(plot_points),
            len(recent),
            len(content),
        )
        return {"role": "system", "content": content}

    def with_context(self, novel_id: str, messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        return [self.build(novel_id), *messages]
