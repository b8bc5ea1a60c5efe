"""Infrastructure CLI subprocess runner.

This module manages CDK CLI execution:
- Per-invocation environment assembly (no inherited process state)
- Subprocess invocation with deploy/destroy stack selectors
- stdout/stderr streaming to the caller's streams
- Exit code handling for success/failure determination
"""
