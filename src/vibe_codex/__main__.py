"""Allow ``python -m vibe_codex``."""
from vibe_codex.cli import main

main()
