from typing import List, Optional

from generators.base import BaseGenerator
from models.generation import NovelChunk, StyleAnalysis, StyleAnalysisRequest

CHUNK_SIZE = 3000
MAX_DIALOGUE_SAMPLES = 20
MAX_DESCRIPTION_SAMPLES = 10
DESCRIPTION_MIN_CHARS = 100
DESCRIPTION_MAX_CHARS = 500

_QUOTE_PAIRS = (("“", "”"), ("「", "」"))
_QUOTE_MARKS = ("“", "「", '"')

STYLE_SYSTEM_PROMPT = """\
You are a literary style analyst, skilled at analysing the writing style, narrative \
technique and language of fiction.

Your tasks:
1. Analyse the provided excerpts and extract their stylistic features
2. Summarise the author's narrative techniques and language habits
3. Produce a style guide an AI writer can follow

Dimensions:
- Writing style: overall register (sparse, ornate, realist, romantic, ...)
- Dialogue: how dialogue is handled
- Description: how setting, characters and action are described
- Pacing: how the plot moves and breathes
- Vocabulary: word choice and sentence structure
- Point of view: first or third person, omniscient or limited

Return the analysis as JSON."""


class StyleAnalyzer(BaseGenerator):
    name = "style"
    system_prompt = STYLE_SYSTEM_PROMPT

    def build_prompt(self, req: StyleAnalysisRequest, samples: List[str]) -> str:
        lines: List[str] = ["Analyse the writing style of this novel.", ""]
        lines.append(f"Novel: {req.novel_title}")
        if req.novel_genre:
            lines.append(f"Genre: {req.novel_genre}")
        if req.analysis_type:
            lines.append(f"Focus: {req.analysis_type}")
        lines.extend(["", "Excerpts:"])
        for i, sample in enumerate(samples, 1):
            lines.append(f"\n--- Excerpt {i} ---\n{sample}")
        lines.append(
            """
Analyse the style along these dimensions:
1. Overall writing style
2. Key features (the 3-5 most prominent)
3. Dialogue style
4. Description style
5. Pacing
6. Vocabulary level
7. Sentence patterns
8. Typical sentences (2-3 quoted from the excerpts)
9. A style guide: one paragraph that tells an AI how to imitate this style

Return exactly this JSON, with these English field names:
{
  "writingStyle": "...",
  "keyFeatures": ["...", "..."],
  "dialogueStyle": "...",
  "descriptionStyle": "...",
  "pacingStyle": "...",
  "vocabularyLevel": "...",
  "sentencePattern": "...",
  "examples": ["...", "..."],
  "styleGuide": "..."
}

Return only the JSON, without Markdown fences or any other text."""
        )
        return "\n".join(lines)

    def analyze(self, req: StyleAnalysisRequest) -> StyleAnalysis:
        samples = list(req.samples)
        if not samples and req.full_text:
            samples = self.extract_samples(req.full_text)
        return self.request_object(
            "analyze",
            self.build_prompt(req, samples),
            StyleAnalysis.model_validate,
            temperature=0.5,
            max_tokens=2000,
        )

    def chunk_novel(self, full_text: str) -> List[NovelChunk]:
        """Sample the opening, middle and ending of a long text."""
        total = len(full_text)
        if total <= CHUNK_SIZE:
            if not full_text.strip():
                return []
            return [NovelChunk(label="opening", content=full_text, position=0, char_count=total)]

        chunks = [
            NovelChunk(label="opening", content=full_text[:CHUNK_SIZE], position=0, char_count=CHUNK_SIZE)
        ]
        if total > CHUNK_SIZE * 3:
            middle_start = total // 2 - CHUNK_SIZE // 2
            chunks.append(
                NovelChunk(
                    label="middle",
                    content=full_text[middle_start : middle_start + CHUNK_SIZE],
                    position=1,
                    char_count=CHUNK_SIZE,
                )
            )
        if total > CHUNK_SIZE * 2:
            ending = full_text[total - CHUNK_SIZE :]
            chunks.append(NovelChunk(label="ending", content=ending, position=2, char_count=len(ending)))
        return chunks

    def extract_samples(self, full_text: str, sample_count: Optional[int] = None) -> List[str]:
        samples = [chunk.content for chunk in self.chunk_novel(full_text)]
        if sample_count is not None and sample_count > 0:
            samples = samples[:sample_count]
        return samples

    def build_style_guide(self, analysis: StyleAnalysis) -> str:
        parts = ["[Writing style guide]", "", f"Overall style: {analysis.writing_style}", ""]
        if analysis.key_features:
            parts.append("Key features:")
            parts.extend(f"- {feature}" for feature in analysis.key_features)
            parts.append("")
        for label, value in (
            ("Dialogue", analysis.dialogue_style),
            ("Description", analysis.description_style),
            ("Pacing", analysis.pacing_style),
            ("Sentence patterns", analysis.sentence_pattern),
        ):
            if value:
                parts.extend([f"{label}: {value}", ""])
        if analysis.examples:
            parts.append("Typical sentences:")
            parts.extend(f'"{example}"' for example in analysis.examples)
            parts.append("")
        if analysis.style_guide:
            parts.extend(["Guidance:", analysis.style_guide])
        return "\n".join(parts).strip() + "\n"

    def compare(self, style_a: StyleAnalysis, style_b: StyleAnalysis) -> str:
        prompt = f"""Compare these two writing styles.

Style A:
- Overall: {style_a.writing_style}
- Dialogue: {style_a.dialogue_style}
- Description: {style_a.description_style}

Style B:
- Overall: {style_b.writing_style}
- Dialogue: {style_b.dialogue_style}
- Description: {style_b.description_style}

Cover the main similarities, the main differences, the strengths of each and \
where each works best. Keep it under 300 words."""
        return self.request_text("compare", prompt, temperature=0.5, system_prompt="")

    def suggest_improvements(self, analysis: StyleAnalysis, target_genre: str) -> str:
        prompt = f"""Current writing style:
{self.build_style_guide(analysis)}
Target genre: {target_genre}

Suggest how to adapt the style to the target genre: what to keep, what to improve, \
concrete changes and good works to study. Keep it under 400 words."""
        return self.request_text("suggest_improvements", prompt, temperature=0.7, system_prompt="")

    def extract_dialogue_samples(self, text: str) -> List[str]:
        dialogues = []
        for line in text.split("\n"):
            has_pair = any(open_ in line and close in line for open_, close in _QUOTE_PAIRS)
            if has_pair or line.count('"') >= 2:
                dialogues.append(line)
            if len(dialogues) >= MAX_DIALOGUE_SAMPLES:
                break
        return dialogues

    def extract_description_samples(self, text: str) -> List[str]:
        descriptions = []
        for paragraph in text.split("\n\n"):
            if any(mark in paragraph for mark in _QUOTE_MARKS):
                continue
            if DESCRIPTION_MIN_CHARS < len(paragraph) < DESCRIPTION_MAX_CHARS:
                descriptions.append(paragraph)
            if len(descriptions) >= MAX_DESCRIPTION_SAMPLES:
                break
        return descriptions
