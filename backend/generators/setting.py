import json
import logging
import re
from typing import Any, Dict, List

from core.errors import ParseError
from generators.base import BaseGenerator, GenerationState
from models.generation import (
    NovelSetting,
    NovelSettingRequest,
    SettingDraft,
    SettingGenerateRequest,
)
from utils.response_cleaner import decode_world_setting, strip_fences

logger = logging.getLogger("storyloom.generators")

SETTING_SYSTEM_PROMPT = """\
You are a professional world-builder for fiction, skilled at creating detailed, \
consistent and deep settings.

Depending on the request you produce:
1. World background: history, geography, culture, society
2. Power systems: cultivation, magic or abilities with ranks, rules and limits
3. Technology: level, key technologies and their use
4. Core concepts: special concepts and terminology
5. Rules: the basic laws of how the world works
6. Organisations: factions, their structure and relationships
7. Items: key objects, equipment and treasures

Keep everything logically consistent, concrete rather than vague, and useful for the story."""

CATEGORY_NAMES = {
    "world": "world background",
    "power": "power system",
    "tech": "technology",
    "concept": "core concept",
    "rule": "rule",
    "org": "organisation",
    "item": "item",
    "other": "other",
}

CATEGORY_BRIEFS = {
    "world": [
        "the basic makeup of the world (geography, history, culture)",
        "social structure and political system",
        "important historical events and timeline",
        "cultural traits and customs",
        "background that matters to the story",
    ],
    "power": [
        "the source and nature of the power",
        "ranks and how to advance",
        "how it is trained or used",
        "its limits and costs",
        "what each rank can concretely do",
    ],
    "tech": [
        "level of technology and era",
        "key technologies and how they work",
        "where they are used and what they change",
        "limits and side effects",
        "technology that matters to the story",
    ],
    "concept": [
        "definition and meaning",
        "origin and development",
        "its role in the world",
        "related terms",
        "concrete examples",
    ],
    "rule": [
        "what the rule covers",
        "where it comes from",
        "benefits of following it",
        "consequences of breaking it",
        "exceptions",
    ],
    "org": [
        "name and nature of the organisation",
        "history and growth",
        "structure and members",
        "goals and beliefs",
        "relations with other factions",
    ],
    "item": [
        "name and appearance",
        "origin and how it was made",
        "function and effects",
        "conditions and limits of use",
        "rarity and value",
    ],
}

DEFAULT_BRIEF = [
    "the core of the setting",
    "related background",
    "concrete details and examples",
    "how it ties into the story",
    "ways it could be extended",
]

_TITLE_RE = re.compile(r"^\s*Title:\s*(.+?)\s*$", re.MULTILINE)
_TAGS_RE = re.compile(r"^\s*Tags:\s*(.+?)\s*$", re.MULTILINE)

NOVEL_SETTING_FIELDS = ("title", "description", "worldSetting", "tags")


def parse_setting_text(text: str, fallback_title: str = "") -> SettingDraft:
    """Split the ``Title:`` / ``---`` / ``Tags:`` text protocol into its parts."""
    title = fallback_title
    if not title:
        match = _TITLE_RE.search(text)
        if match:
            title = match.group(1)

    content = text
    parts = text.split("---")
    if len(parts) >= 3:
        content = parts[1]

    tags = ""
    match = _TAGS_RE.search(text)
    if match:
        tags = match.group(1)

    return SettingDraft(title=title.strip(), content=content.strip(), tags=tags.strip())


class SettingGenerator(BaseGenerator):
    name = "setting"
    system_prompt = SETTING_SYSTEM_PROMPT

    def build_prompt(self, req: SettingGenerateRequest) -> str:
        category = CATEGORY_NAMES.get(req.category, "setting")
        lines: List[str] = [f"Create a new setting for this novel. Category: {category}.", "", "Novel:"]
        lines.append(f"Title: {req.novel_title}")
        if req.novel_genre:
            lines.append(f"Genre: {req.novel_genre}")
        if req.title:
            lines.extend(["", "Setting title:", req.title])
        if req.context:
            lines.extend(["", "Background:", req.context])
        if req.requirements:
            lines.extend(["", "Specific requirements:", req.requirements])
        lines.extend(["", "Cover:"])
        brief = CATEGORY_BRIEFS.get(req.category, DEFAULT_BRIEF)
        lines.extend(f"{i}. {item}" for i, item in enumerate(brief, 1))
        lines.append(
            """
Be structured, detailed and concrete. If no title was given, choose a fitting one.

Answer in exactly this format:
Title: [setting title]
---
[the detailed setting, organised with headings, lists and paragraphs]
---
Tags: [related tags, comma separated]"""
        )
        return "\n".join(lines)

    def generate(self, req: SettingGenerateRequest) -> SettingDraft:
        with self._call("generate") as call:
            raw = self._request(call, self.build_prompt(req), self._options(0.7, 3000))
            call.advance(GenerationState.PARSING)
            draft = parse_setting_text(strip_fences(raw), fallback_title=req.title)
            call.advance(GenerationState.VALIDATING)
            if not draft.content:
                raise ParseError("generated setting has no content", raw=raw)
            call.advance(GenerationState.DONE)
            return draft

    def enhance(self, title: str, content: str, hint: str = "") -> str:
        prompt = f"""Improve this setting.

Setting title:
{title}

Current content:
{content}"""
        if hint:
            prompt += f"\n\nImprovement request:\n{hint}"
        prompt += """

Requirements:
1. Add concrete details and examples
2. Add related background
3. Make it richer and more three-dimensional
4. Keep it consistent and well structured
5. The result should be two to three times the original length

Return only the improved content."""
        return self.request_text("enhance", prompt, temperature=0.7, max_tokens=3000)

    # Novel-level setting

    def build_novel_setting_prompt(self, req: NovelSettingRequest) -> str:
        fixed = set(req.fixed_fields)
        lines: List[str] = [f"Create the following for a {req.genre} novel:", ""]
        if fixed:
            lines.append("These fields are decided, keep them unchanged:")
            if "title" in fixed and req.title:
                lines.append(f"- Title: {req.title}")
            if "description" in fixed and req.description:
                lines.append(f"- Description: {req.description}")
            if "worldSetting" in fixed and req.world_setting:
                lines.append(f"- World setting: {req.world_setting}")
            if "tags" in fixed and req.tags:
                lines.append(f"- Tags: {req.tags}")
            lines.append("")
        if req.feedback:
            lines.extend([f"Author feedback: {req.feedback}", ""])

        lines.append("Generate these fields as JSON:")
        if "title" not in fixed:
            lines.append("- title: the novel title (string, catchy and true to the genre)")
        if "description" not in fixed:
            lines.append("- description: the blurb (string, 200-300 words, protagonist, setting and conflict)")
        if "worldSetting" not in fixed:
            lines.append(
                "- worldSetting: the world setting (string describing background, power system and "
                "social structure, paragraphs separated by newlines)"
            )
        if "tags" not in fixed:
            lines.append("- tags: 3-5 tags (string, comma separated)")
        lines.append("")
        lines.append(
            "Important: every field must be a string, do not use nested objects. "
            "worldSetting is one complete string and may contain newlines."
        )
        lines.append("Return only the JSON, without any other text.")
        return "\n".join(lines)

    def generate_novel_setting(self, req: NovelSettingRequest) -> NovelSetting:
        def build(payload: Dict[str, Any]) -> NovelSetting:
            setting = decode_novel_setting(payload)
            return apply_fixed_fields(setting, req)

        return self.request_object(
            "generate_novel_setting",
            self.build_novel_setting_prompt(req),
            build,
            temperature=0.7,
            max_tokens=2000,
        )


def decode_novel_setting(payload: Dict[str, Any]) -> NovelSetting:
    """Strict shape first (every field a string), flexible world setting second."""
    if all(isinstance(payload.get(key, ""), str) for key in NOVEL_SETTING_FIELDS):
        return NovelSetting.model_validate({key: payload.get(key, "") for key in NOVEL_SETTING_FIELDS})

    logger.info("novel setting uses flexible shape keys=%s", ",".join(sorted(payload)))
    return NovelSetting(
        title=_text_field(payload.get("title")),
        description=_text_field(payload.get("description")),
        world_setting=decode_world_setting(payload.get("worldSetting")).flatten(),
        tags=_text_field(payload.get("tags")),
    )


def _text_field(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ", ".join(str(item) for item in value)
    return json.dumps(value, ensure_ascii=False)


def apply_fixed_fields(setting: NovelSetting, req: NovelSettingRequest) -> NovelSetting:
    fixed = set(req.fixed_fields)
    updates: Dict[str, str] = {}
    if "title" in fixed:
        updates["title"] = req.title
    if "description" in fixed:
        updates["description"] = req.description
    if "worldSetting" in fixed:
        updates["world_setting"] = req.world_setting
    if "tags" in fixed:
        updates["tags"] = req.tags
    return setting.model_copy(update=updates) if updates else setting
