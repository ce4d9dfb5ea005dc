import logging
import textwrap
from pathlib import Path
from string import Template

from src.config import Config

logger = logging.getLogger(__name__)


class PromptManager:
    def __init__(self, config: Config, log_prompts=False):
        # Directory containing .txt prompt files
        self.prompts_dir = Path(config.PROMPTS_DIR)
        self.log_prompts = log_prompts
        self._templates = {}
        self._load_prompts()

    def _load_prompts(self):
        """
        Loads all .txt files in self.prompts_dir as Template objects
        keyed by file stem.
        """
        if not self.prompts_dir.is_dir():
            logger.warning(f"Prompts directory not found: {self.prompts_dir}")
            return

        for path in sorted(self.prompts_dir.glob("*.txt")):
            content = textwrap.dedent(path.read_text(encoding="utf-8"))
            self._templates[path.stem] = Template(content)
            logger.debug(f"Loaded prompt template: {path.name}")

    def has_prompt(self, prompt_name) -> bool:
        return prompt_name in self._templates

    def build_prompt(self, prompt_name, **kwargs) -> str:
        """
        Substitutes the given kwargs into the specified prompt template.

        Raises:
            KeyError: If no template with that name was loaded.
        """
        if prompt_name not in self._templates:
            raise KeyError(f"No prompt template named '{prompt_name}' in {self.prompts_dir}")

        prompt = self._templates[prompt_name].substitute(**kwargs)
        if self.log_prompts:
            logger.debug(f"Built prompt '{prompt_name}': {prompt}")
        return prompt
