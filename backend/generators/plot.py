from typing import Callable, List

from generators.base import BaseGenerator
from models.generation import PlotDesign, PlotGenerateRequest

PLOT_SYSTEM_PROMPT = """\
You are a professional plot designer for fiction, skilled at building compelling story arcs.

Your task is to turn the information the user provides into a complete, detailed plot design:
1. Content: a detailed account of how the events unfold
2. Summary: a concise synopsis
3. Conflict: the main tensions and oppositions
4. Development: where the plot can go next
5. Characters: who is involved and how
6. Impact: consequences for the story and the characters

Make sure the plot is logical, has tension, serves the characters and fits the world.

Return the result as JSON with these fields:
{
  "title": "plot title",
  "content": "detailed plot (300-500 words)",
  "summary": "synopsis (50-100 words)",
  "conflict": "core conflict (100-150 words)",
  "development": "development directions (100-150 words)",
  "characters": "characters involved (50-100 words)",
  "impact": "impact and consequences (100-150 words)"
}"""


class PlotGenerator(BaseGenerator):
    name = "plot"
    system_prompt = PLOT_SYSTEM_PROMPT

    def build_prompt(self, req: PlotGenerateRequest) -> str:
        lines: List[str] = ["Design a complete plot for:", ""]
        lines.append(f"Plot title: {req.title}")
        if req.novel_title:
            lines.append(f"Novel: {req.novel_title}")
        if req.novel_genre:
            lines.append(f"Genre: {req.novel_genre}")
        if req.plot_type:
            lines.append(f"Plot type: {req.plot_type}")
        if req.world_setting:
            lines.append("")
            lines.append("World setting:")
            lines.append(req.world_setting)
        if req.characters:
            lines.append("")
            lines.append(f"Characters involved: {req.characters}")
        if req.context:
            lines.append("")
            lines.append("Story so far:")
            lines.append(req.context)
        lines.append("")
        lines.append("Return only the JSON object, without Markdown fences or any other text.")
        return "\n".join(lines)

    def generate(self, req: PlotGenerateRequest) -> PlotDesign:
        return self.request_object(
            "generate", self.build_prompt(req), PlotDesign.model_validate, temperature=0.8
        )

    def generate_stream(self, req: PlotGenerateRequest, on_segment: Callable[[str], None]) -> PlotDesign:
        return self.request_object(
            "generate_stream",
            self.build_prompt(req),
            PlotDesign.model_validate,
            temperature=0.8,
            on_segment=on_segment,
        )

    def enhance_content(self, title: str, content: str) -> str:
        prompt = f"""Improve and expand this plot so it is more dramatic and engaging.

Plot title: {title}
Current content: {content}

Requirements:
1. Keep the core events
2. Sharpen the conflict and tension
3. Add concrete detail and turning points
4. Make the cause and effect clear

Return only the improved plot text (300-500 words)."""
        return self.request_text("enhance_content", prompt, temperature=0.7, system_prompt="")
