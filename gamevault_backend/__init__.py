"""
Shared GameVault backend library code.

This package holds the metadata engine that is reused across:
- pipeline scripts in `scripts/` (library syncs, platform maintenance)
- any request layer that wants to offer "pick the right match" flows

Entrypoints (CLI scripts, web handlers) should live outside this package and
import from `gamevault_backend` rather than the other way around.
"""
