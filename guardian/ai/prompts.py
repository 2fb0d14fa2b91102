"""Default analysis prompt sent with every image unless the request overrides it."""

DEFAULT_PROMPT = (
    "Analyze this screenshot. You are Edge-Guardian. Identify the psychological marketing or "
    "manipulation tactics used to influence the viewer and judge how risky the content is. "
    "Respond with a single JSON object and nothing else, using exactly these keys: "
    '"verdict" (one of "SAFE", "CAUTION", "DANGER"), '
    '"score" (integer 0-100, higher means more manipulative), '
    '"tactic" (short name of the main tactic), '
    '"explanation" (one sentence).'
)


def resolve_prompt(prompt: str | None) -> str:
    """Return the request prompt, or DEFAULT_PROMPT when it is missing or blank."""
    if prompt is None or not prompt.strip():
        return DEFAULT_PROMPT
    return prompt
