import logging
from typing import Any, Dict, List

from core.errors import IntegrityError, ParseError
from generators.base import BaseGenerator
from models.generation import (
    GeneratedConnection,
    StorylineGenerateRequest,
    StorylineGenerateResponse,
)
from services.storyline_graph import validate_generated

logger = logging.getLogger("storyloom.generators")

STORYLINE_SYSTEM_PROMPT = """\
You are a professional story-structure designer, skilled at building rich, \
interlocking storylines.

Your task is to design a complete multi-thread story structure for the novel:
1. Main storyline: the core plot
2. Character storylines: growth arcs of the main characters
3. Plot storylines: important subplots
4. Theme storylines: how the deeper themes unfold

Design principles:
1. Clear hierarchy: the main line leads, subplots enrich without taking over
2. Pacing: tension and release, escalating climaxes
3. Character growth: every important character gets a complete arc
4. Payoff: foreshadowing planted early is paid off later
5. Escalation: conflicts grow from small to large
6. Emotional resonance: keep the reader's experience in mind

Node types:
- start: beginning of a storyline
- event: ordinary plot event
- turning: major turning point
- merge: several lines converge
- end: end of a storyline

Connection types:
- sequence: happens after
- cause: causes
- parallel: happens alongside
- condition: triggered by a condition

Return the result as JSON."""

STORYLINE_RESPONSE_SHAPE = """\
Storyline types:
- main: the core plot
- character: a character's growth
- plot: a subplot
- theme: how a theme unfolds

Connections refer to nodes by their zero-based position in the same storyline's \
"nodes" array.

Return exactly this JSON shape:
{
  "storylines": [
    {
      "title": "storyline title",
      "description": "storyline description",
      "type": "main|character|plot|theme",
      "color": "#hex colour",
      "priority": 1-10,
      "nodes": [
        {
          "title": "node title",
          "description": "detailed node description",
          "nodeType": "start|event|turning|merge|end",
          "chapterRange": "chapters covered, e.g. '1-3' or '5'",
          "orderIndex": 0,
          "status": "planned"
        }
      ],
      "connections": [
        {
          "fromIndex": 0,
          "toIndex": 1,
          "connectionType": "sequence|cause|parallel|condition",
          "description": "why these nodes connect",
          "weight": 1-10
        }
      ]
    }
  ]
}

Return only the JSON, without Markdown fences or any other text."""


class StorylineGenerator(BaseGenerator):
    name = "storyline"
    system_prompt = STORYLINE_SYSTEM_PROMPT

    def build_prompt(self, req: StorylineGenerateRequest) -> str:
        lines: List[str] = ["Design the storyline structure for this novel.", "", "Novel:"]
        lines.append(f"Title: {req.novel_title}")
        if req.novel_genre:
            lines.append(f"Genre: {req.novel_genre}")
        if req.world_setting:
            lines.append(f"World setting: {req.world_setting}")
        if req.main_conflict:
            lines.append(f"Core conflict: {req.main_conflict}")
        if req.characters:
            lines.extend(["", "Main characters:"])
            lines.extend(f"{i}. {character}" for i, character in enumerate(req.characters, 1))
        if req.existing_storylines:
            lines.extend(["", "Existing storylines (generate different ones, avoid duplicating them):"])
            lines.extend(
                f"{i}. {existing.title} - {existing.description}"
                for i, existing in enumerate(req.existing_storylines, 1)
            )

        lines.extend(["", "Requirements:"])
        lines.append(f"- Create {req.storyline_count} storylines (main line and subplots)")
        lines.append(f"- Each storyline has {req.nodes_per_line} key nodes")
        lines.append("- Nodes are concrete: where it happens, what happens, who is met, what is gained, what it changes")
        lines.append("- Nodes have clear logical and causal links")
        lines.append("- Plant foreshadowing and say how it pays off")
        lines.append("- Give every storyline a different colour")
        if req.existing_storylines:
            lines.append("- The new storylines must clearly differ in theme and content from the existing ones")
        lines.extend(
            [
                "",
                'A good node description: "In the ancient cave deep in the Azure Mountains the hero '
                "defeats the guardian beast, obtains the Ninefold Sky technique, breaks through to the "
                'spirit-master realm and becomes eligible for the sect tournament"',
                'A poor node description: "the hero trains and gets stronger" (too vague)',
                "",
                STORYLINE_RESPONSE_SHAPE,
            ]
        )
        return "\n".join(lines)

    def generate(self, req: StorylineGenerateRequest) -> StorylineGenerateResponse:
        def build(payload: Dict[str, Any]) -> StorylineGenerateResponse:
            response = StorylineGenerateResponse.model_validate(payload)
            for storyline in response.storylines:
                try:
                    validate_generated(storyline)
                except IntegrityError as exc:
                    # persist_generated rejects it later
                    logger.warning("generated storyline has invalid connections error=%s", exc)
            return response

        return self.request_object(
            "generate", self.build_prompt(req), build, temperature=0.7, max_tokens=4000
        )

    def optimize(self, description: str, feedback: str) -> str:
        prompt = f"""Rewrite this storyline description according to the author's feedback.

Current description:
{description}

Feedback:
{feedback}

Requirements:
1. Keep the style and structure of the original
2. Apply the feedback fully
3. If the feedback asks for more nodes, extend the description
4. Keep the description coherent and complete
5. Be detailed and concrete about the key plot points

Return only the rewritten description."""
        return self.request_text("optimize", prompt, temperature=0.7, max_tokens=3000, system_prompt="")

    def expand_part(self, full_description: str, selected_text: str, hint: str = "") -> str:
        prompt = f"""The author selected part of a storyline description and wants it expanded.

Full storyline description (context):
{full_description}

Selected part to expand:
{selected_text}"""
        if hint:
            prompt += f"\n\nExpansion request:\n{hint}"
        prompt += """

Requirements:
1. Stay consistent with the whole storyline
2. Be more detailed and concrete
3. For a node: place, events, characters, key dialogue, emotional shift, outcome
4. For an overview: background, conflict setup, line of development
5. Keep the tone of the original
6. The result should be two to three times the length of the selection

Return only the expanded text."""
        return self.request_text("expand_part", prompt, temperature=0.7, max_tokens=2000, system_prompt="")

    def expand_node(self, title: str, description: str, context: str = "") -> str:
        prompt = f"""Expand this story node.

Node title: {title}
Current description: {description}

Context:
{context or "(none)"}

Describe in more detail:
1. What exactly happens
2. Which characters act and how
3. How it moves the plot
4. How it affects what follows
5. Possible foreshadowing

Return the expanded description (200-300 words) as plain text."""
        return self.request_text("expand_node", prompt, temperature=0.7, system_prompt="")

    def suggest_connections(self, nodes: List[str]) -> List[GeneratedConnection]:
        listing = "\n".join(f"{i}. {node}" for i, node in enumerate(nodes))
        prompt = f"""Analyse these story nodes and suggest how they connect.

Nodes (zero-based index. description):
{listing}

Consider chronological order, cause and effect, parallel development and conditional triggers.

Return JSON:
{{
  "connections": [
    {{
      "fromIndex": 0,
      "toIndex": 1,
      "connectionType": "sequence|cause|parallel|condition",
      "description": "why they connect",
      "weight": 1-10
    }}
  ]
}}"""

        def build(payload: Dict[str, Any]) -> List[GeneratedConnection]:
            items = payload.get("connections")
            if not isinstance(items, list):
                raise ParseError("response has no connections list", raw=str(payload))
            connections = []
            for item in items:
                if not isinstance(item, dict):
                    continue
                connection = GeneratedConnection.model_validate(item)
                in_range = 0 <= connection.from_index < len(nodes) and 0 <= connection.to_index < len(nodes)
                if not in_range or connection.from_index == connection.to_index:
                    logger.warning(
                        "dropping suggested connection from=%d to=%d nodes=%d",
                        connection.from_index,
                        connection.to_index,
                        len(nodes),
                    )
                    continue
                connections.append(connection)
            return connections

        return self.request_object("suggest_connections", prompt, build, temperature=0.6)
