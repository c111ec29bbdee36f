"""Build generation prompts from post content and system prompt files."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .generation_models import ImageKind

logger = logging.getLogger(__name__)

HERO_PROMPT_FILE = "prompt.txt"
INBLOG_PROMPT_FILE = "inblogimageprompt.txt"

UPLOAD_IMAGE_PATTERN = re.compile(r"!\[[^\]]*\]\(/images/uploads/[^)]+\)")


@dataclass(slots=True)
class PromptBuilder:
    """Compose the message sent to the generation service."""

    prompts_dir: Path
    log: logging.Logger = field(default_factory=lambda: logger)

    def build(self, content: str, kind: ImageKind, *, placeholder_index: int = 0) -> str:
        if kind is ImageKind.HERO:
            system_prompt = self.system_prompt(kind)
            if not system_prompt:
                return content
            return f"{system_prompt}\n\n{content}"

        system_prompt = self.system_prompt(kind)
        if not system_prompt:
            return content
        transformed = mark_inblog_placeholders(content)
        instruction = f"\n\nCREATE IMAGE FOR PLACEHOLDER {placeholder_index + 1} NOW"
        return f"{system_prompt}\n\n{transformed}{instruction}"

    def system_prompt(self, kind: ImageKind) -> str:
        filename = HERO_PROMPT_FILE if kind is ImageKind.HERO else INBLOG_PROMPT_FILE
        path = self.prompts_dir / filename
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            self.log.warning(
                "generation.prompt.system_prompt_unreadable",
                extra={"path": str(path), "error": str(exc)},
            )
            return ""
        if not text.strip():
            self.log.warning("generation.prompt.system_prompt_empty", extra={"path": str(path)})
            return ""
        return text


def mark_inblog_placeholders(content: str) -> str:
    """Replace uploaded image references with numbered placeholders (1-based)."""

    counter = 0

    def _placeholder(_: re.Match[str]) -> str:
        nonlocal counter
        counter += 1
        return f"{{INSERT IN BLOG IMAGE {counter}}}"

    return UPLOAD_IMAGE_PATTERN.sub(_placeholder, content)


__all__ = ["PromptBuilder", "mark_inblog_placeholders"]
