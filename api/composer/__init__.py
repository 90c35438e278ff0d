"""Answer composition: synthesis prompts and quality gates."""
