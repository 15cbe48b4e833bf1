from typing import Callable, List, Optional

from generators.base import BaseGenerator
from models.generation import CharacterGenerateRequest, CharacterProfile

CHARACTER_SYSTEM_PROMPT = """\
You are a professional character designer for fiction, skilled at creating deep, \
three-dimensional characters.

Your task is to turn the basic information the user provides into a complete, \
detailed character profile covering:
1. Personality: a multi-dimensional description with strengths and flaws
2. Background: upbringing and formative events
3. Appearance: concrete physical traits that fit the personality
4. Skills: what the character is good at
5. Goals: what drives the character
6. Weaknesses: limits and room for growth

Make sure the character is believable, complex rather than a single label, has \
room to grow, and fits the novel's tone and world.

Return the result as JSON with these fields:
{
  "name": "character name",
  "description": "full description (200-300 words)",
  "personality": "personality traits (100-150 words)",
  "background": "backstory (150-200 words)",
  "appearance": "appearance (80-100 words)",
  "skills": "skills and strengths (80-100 words)",
  "goals": "goals and motivation (80-100 words)",
  "weaknesses": "weaknesses and flaws (80-100 words)"
}"""


class CharacterGenerator(BaseGenerator):
    name = "character"
    system_prompt = CHARACTER_SYSTEM_PROMPT

    def build_prompt(self, req: CharacterGenerateRequest) -> str:
        lines: List[str] = ["Create a complete profile for the following character:", ""]
        lines.append(f"Name: {req.name}")
        if req.novel_title:
            lines.append(f"Novel: {req.novel_title}")
        if req.novel_genre:
            lines.append(f"Genre: {req.novel_genre}")
            lines.append(f"Make sure the profile fits the conventions of {req.novel_genre} fiction.")
        if req.role:
            lines.append(f"Role in the story: {req.role}")
        if req.personality:
            lines.append(f"Personality hints: {req.personality}")
        if req.background:
            lines.append("")
            lines.append("IMPORTANT - world and background of the novel:")
            lines.append(req.background)
            lines.append(
                "Follow this world strictly: the character's background, abilities and "
                "history must obey its rules."
            )
        lines.append("")
        lines.append("Return only the JSON object, without Markdown fences or any other text.")
        return "\n".join(lines)

    def generate(self, req: CharacterGenerateRequest) -> CharacterProfile:
        return self.request_object(
            "generate",
            self.build_prompt(req),
            CharacterProfile.model_validate,
            temperature=0.8,
        )

    def generate_stream(
        self,
        req: CharacterGenerateRequest,
        on_segment: Callable[[str], None],
    ) -> CharacterProfile:
        return self.request_object(
            "generate_stream",
            self.build_prompt(req),
            CharacterProfile.model_validate,
            temperature=0.8,
            on_segment=on_segment,
        )

    def enhance_description(self, name: str, description: str) -> str:
        prompt = f"""Improve and expand the description of this character so it is vivid, \
three-dimensional and deep.

Name: {name}
Current description: {description}

Return the improved description (200-300 words). Requirements:
1. Keep the existing core traits
2. Add detail and depth
3. Make it vivid
4. Highlight what makes the character unique

Return only the description text."""
        return self.request_text("enhance_description", prompt, temperature=0.7, system_prompt="")

    def suggest_relationships(
        self,
        character_a: str,
        description_a: str,
        character_b: str,
        description_b: str,
        context: Optional[str] = None,
    ) -> str:
        prompt = f"""Analyse the possible relationship between these two characters:

Character A: {character_a}
{description_a}

Character B: {character_b}
{description_b}
"""
        if context:
            prompt += f"\nStory context:\n{context}\n"
        prompt += """
Suggest:
1. What kind of relationship they could have
2. How the relationship could develop
3. Conflicts or interactions that could arise
4. How the relationship could drive the plot

Answer in about 150-200 words."""
        return self.request_text("suggest_relationships", prompt, temperature=0.7, system_prompt="")
