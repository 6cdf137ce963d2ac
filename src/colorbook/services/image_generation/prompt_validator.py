"""Prompt validation for image generation.

Validates text prompts before they are turned into jobs.
"""

MAX_PROMPT_LENGTH = 4000


def validate_prompt(prompt: str) -> str:
    """Validate prompt text for image generation.

    Args:
        prompt: Text prompt entered by the user

    Returns:
        Prompt with surrounding whitespace removed

    Raises:
        ValueError: If prompt is empty, not a string, or exceeds the maximum length
    """
    if not isinstance(prompt, str):
        raise ValueError(f"Prompt must be a string, got {type(prompt).__name__}")

    prompt = prompt.strip()
    if not prompt:
        raise ValueError("Please enter a prompt.")

    if len(prompt) > MAX_PROMPT_LENGTH:
        raise ValueError(
            f"Prompt exceeds maximum length of {MAX_PROMPT_LENGTH} characters (got {len(prompt)})"
        )

    return prompt


def parse_batch_prompts(text: str) -> list[str]:
    """Split multi-line input into one prompt per non-blank line."""
    return [validate_prompt(line) for line in text.splitlines() if line.strip()]
