"""Use cases — one function per user intent, shared by the CLI and the menu."""
