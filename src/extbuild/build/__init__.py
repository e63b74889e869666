"""Build actions (generate, compile, archive, link), manifest and orchestration."""
