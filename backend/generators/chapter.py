from typing import Any, Callable, Dict, List

from core.errors import ParseError
from generators.base import BaseGenerator
from models.generation import (
    ChapterDraft,
    ChapterGenerateRequest,
    ChapterSuggestion,
    ChapterSuggestionsRequest,
    ExpandContentRequest,
)
from utils.response_cleaner import try_parse_json_object

SUGGESTION_COUNT = 5
SUMMARY_FALLBACK_CHARS = 200

CHAPTER_SYSTEM_PROMPT = """\
You are a professional serial-fiction author, skilled at writing gripping chapters.

Your task is to write one complete chapter from the information provided.

Principles:
1. Length: follow the target word count closely (within about 200 words)
2. Gradual storytelling: do not tell everything at once, leave room for later chapters
3. Foreshadowing: plant hints that build suspense
4. Pacing: move the plot neither too fast nor too slow
5. Characterisation: show character through dialogue and action, not exposition
6. Detail: use setting and action detail to draw the reader in
7. No premature endings: do not resolve a storyline in this chapter unless asked

Style:
- third-person narration
- dialogue that fits each character
- natural scene transitions
- keep the suspense and momentum

Return the result as JSON with these fields:
{
  "title": "chapter title",
  "content": "full chapter text",
  "summary": "chapter summary (under 200 words)",
  "keyEvents": ["key event 1", "key event 2"],
  "characterDev": "how the characters developed",
  "plotProgress": "how the plot advanced",
  "foreshadowing": "foreshadowing that was planted",
  "nextChapterHint": "where the next chapter could go"
}"""

CHAPTER_TEXT_SYSTEM_PROMPT = """\
You are a professional serial-fiction author and editor. Answer with plain text \
only: no JSON, no Markdown fences, no commentary around the answer."""


class ChapterGenerator(BaseGenerator):
    name = "chapter"
    system_prompt = CHAPTER_SYSTEM_PROMPT

    def build_prompt(self, req: ChapterGenerateRequest) -> str:
        lines: List[str] = [f"Write chapter {req.chapter_number}: {req.title}", ""]
        if req.novel_title:
            lines.append(f"Novel: {req.novel_title}")
        if req.novel_genre:
            lines.append(f"Genre: {req.novel_genre}")
        if req.world_setting:
            lines.extend(["", "World setting:", req.world_setting])
        if req.style_guide:
            lines.extend(["", "Style guide (follow it closely):", req.style_guide])
        if req.previous_summary:
            lines.extend(["", "Story so far:", req.previous_summary])
        if req.outline:
            lines.extend(["", "Chapter outline:", req.outline])
        if req.characters:
            lines.extend(["", "Characters in this chapter:"])
            lines.extend(f"- {character}" for character in req.characters)
        if req.plot_points:
            lines.extend(["", "Plot points involved:"])
            lines.extend(f"- {point}" for point in req.plot_points)
        if req.focus_points:
            lines.extend(["", "Focus of this chapter:"])
            lines.extend(f"- {point}" for point in req.focus_points)
        if req.writing_style:
            lines.extend(["", f"Writing style: {req.writing_style}"])

        lines.extend(["", "Requirements:"])
        lines.append(f"- Target length: about {req.target_word_count} words")
        if req.avoid_complete:
            lines.append("- Do not resolve the main conflicts; end on a hook for the next chapter")
        lines.append("- Return only the JSON object, without Markdown fences or any other text.")
        return "\n".join(lines)

    def _build_draft(self, payload: Dict[str, Any]) -> ChapterDraft:
        draft = ChapterDraft.model_validate(payload)
        if not draft.content.strip():
            raise ParseError("generated chapter has no content", raw=str(payload))
        if not draft.summary.strip():
            draft.summary = draft.content.strip()[:SUMMARY_FALLBACK_CHARS]
        return draft

    def generate(self, req: ChapterGenerateRequest) -> ChapterDraft:
        draft = self.request_object(
            "generate", self.build_prompt(req), self._build_draft, temperature=0.8, max_tokens=3000
        )
        if not draft.title:
            draft.title = req.title
        return draft

    def generate_stream(self, req: ChapterGenerateRequest, on_segment: Callable[[str], None]) -> ChapterDraft:
        draft = self.request_object(
            "generate_stream",
            self.build_prompt(req),
            self._build_draft,
            temperature=0.8,
            max_tokens=3000,
            on_segment=on_segment,
        )
        if not draft.title:
            draft.title = req.title
        return draft

    def summarize(self, title: str, content: str) -> str:
        prompt = f"""Write a concise summary of this chapter for use as context in later chapters.

Chapter title: {title}
Chapter content:
{content}

Summary requirements:
1. Under 200 words
2. Cover the key plot developments
3. Cover the important character actions
4. Mention foreshadowing and open questions
5. Skip descriptive detail

Return only the summary text."""
        return self.request_text(
            "summarize", prompt, temperature=0.5, system_prompt=CHAPTER_TEXT_SYSTEM_PROMPT
        )

    def suggest_next(self, req: ChapterSuggestionsRequest) -> List[ChapterSuggestion]:
        lines = [f"Suggest {SUGGESTION_COUNT} different directions for the next chapter.", ""]
        lines.append(f"Novel: {req.novel_title}")
        lines.append(f"Next chapter: chapter {req.chapter_number}")
        if req.novel_genre:
            lines.append(f"Genre: {req.novel_genre}")
        if req.world_setting:
            lines.extend(["", "World setting:", req.world_setting])
        if req.previous_summary:
            lines.extend(["", "Story so far:", req.previous_summary])
        lines.append(
            f"""
Each suggestion needs a title, a short outline, a description of where it takes the \
story, and a type (action, emotion, plot, mystery, ...). Make the {SUGGESTION_COUNT} \
suggestions clearly different from each other.

Return only JSON in this shape, keeping every string on a single line:
{{
  "suggestions": [
    {{"title": "...", "outline": "...", "description": "...", "type": "..."}}
  ]
}}"""
        )

        def build(payload: Dict[str, Any]) -> List[ChapterSuggestion]:
            items = payload.get("suggestions")
            if not isinstance(items, list):
                raise ParseError("response has no suggestions list", raw=str(payload))
            return [ChapterSuggestion.model_validate(item) for item in items if isinstance(item, dict)]

        return self.request_object(
            "suggest_next", "\n".join(lines), build, temperature=0.8, max_tokens=2000
        )

    def outline(self, req: ChapterGenerateRequest) -> str:
        prompt = f"""Write a detailed outline for this chapter.

Novel: {req.novel_title} (genre: {req.novel_genre or "unspecified"})
Chapter {req.chapter_number}: {req.title}
"""
        if req.previous_summary:
            prompt += f"\nStory so far:\n{req.previous_summary}\n"
        if req.characters:
            prompt += "\nCharacters:\n" + "\n".join(f"- {c}" for c in req.characters) + "\n"
        if req.plot_points:
            prompt += "\nPlot points:\n" + "\n".join(f"- {p}" for p in req.plot_points) + "\n"
        prompt += """
The outline should list the opening, three to five scenes with their purpose, the \
key turning point and the closing hook. Return only the outline text."""
        return self.request_text(
            "outline", prompt, temperature=0.7, system_prompt=CHAPTER_TEXT_SYSTEM_PROMPT
        )

    def refine(self, title: str, content: str, feedback: str) -> str:
        prompt = f"""Revise this chapter according to the feedback.

Chapter title: {title}

Original content:
{content}

Feedback:
{feedback}

Keep the plot structure but improve the wording, pacing or detail as the feedback asks.

Important:
1. Return only the full revised chapter text
2. Do not return JSON
3. Do not add explanations
4. Do not include the title"""
        text = self.request_text(
            "refine", prompt, temperature=0.7, max_tokens=6000, system_prompt=CHAPTER_TEXT_SYSTEM_PROMPT
        )
        if text.lstrip().startswith("{"):
            payload = try_parse_json_object(text)
            if payload and isinstance(payload.get("content"), str):
                return payload["content"]
        return text

    def continue_chapter(self, title: str, content: str, hint: str = "") -> str:
        prompt = f"""Continue this chapter.

Chapter title: {title}

Existing content:
{content}

Direction: {hint or "continue naturally"}

Keep the style consistent and move the plot forward. Return only the new text, \
without repeating the existing content."""
        return self.request_text(
            "continue_chapter",
            prompt,
            temperature=0.8,
            max_tokens=2000,
            system_prompt=CHAPTER_TEXT_SYSTEM_PROMPT,
        )

    def expand(self, req: ExpandContentRequest) -> str:
        prompt = f"""Expand the following passage with more detail and development.

Passage:
{req.expand_target}

Expansion request:
{req.expand_hint or "add sensory detail, inner thoughts and action"}
"""
        if req.original_content:
            prompt += f"\nSurrounding text (for continuity only):\n{req.original_content}\n"
        if req.novel_genre:
            prompt += f"\nGenre: {req.novel_genre}\n"
        if req.world_setting:
            prompt += f"\nWorld setting:\n{req.world_setting}\n"
        if req.style_guide:
            prompt += f"\nStyle guide:\n{req.style_guide}\n"
        prompt += """
Requirements:
1. Keep the existing events and characters
2. Add setting, inner life and action detail
3. The result should be two to three times the length of the passage
4. Return only the expanded passage"""
        return self.request_text(
            "expand", prompt, temperature=0.8, max_tokens=3000, system_prompt=CHAPTER_TEXT_SYSTEM_PROMPT
        )
