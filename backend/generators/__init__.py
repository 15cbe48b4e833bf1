from typing import Optional

from core.llm_client import LLMClient
from generators.base import GenerationConfig
from generators.chapter import ChapterGenerator
from generators.character import CharacterGenerator
from generators.goal import GoalGenerator
from generators.plot import PlotGenerator
from generators.setting import SettingGenerator
from generators.storyline import StorylineGenerator
from generators.style import StyleAnalyzer


class GeneratorSuite:
    """All generators bound to one client and one generation config."""

    def __init__(self, llm_client: LLMClient, config: Optional[GenerationConfig] = None):
        self.llm_client = llm_client
        self.config = config or GenerationConfig()
        self.character = CharacterGenerator(llm_client, self.config)
        self.plot = PlotGenerator(llm_client, self.config)
        self.chapter = ChapterGenerator(llm_client, self.config)
        self.storyline = StorylineGenerator(llm_client, self.config)
        self.setting = SettingGenerator(llm_client, self.config)
        self.style = StyleAnalyzer(llm_client, self.config)
        self.goal = GoalGenerator(llm_client, self.config)
