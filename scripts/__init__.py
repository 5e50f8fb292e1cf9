"""
Tobira database tooling.

- database/: Database administration commands (clear, script, migrate,
  console, dump, restore, reset)
"""
