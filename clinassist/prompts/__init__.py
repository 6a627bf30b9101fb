from clinassist.prompts.builder import build_prompt

__all__ = ["build_prompt"]
