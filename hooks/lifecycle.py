#!/usr/bin/env python3
"""
Council lifecycle hook: routes agent hook events to the engine.

Reads one JSON payload on stdin and prints one JSON reply. The event
name comes from the payload's ``hook_event_name`` or from argv[1].

Usage in the host's hook settings:
{
  "hooks": {
    "SessionStart": [{"hooks": [{"type": "command", "command": "python /path/to/council/hooks/lifecycle.py SessionStart"}]}],
    "BeforeAgent":  [{"hooks": [{"type": "command", "command": "python /path/to/council/hooks/lifecycle.py BeforeAgent"}]}],
    "AfterTool":    [{"hooks": [{"type": "command", "command": "python /path/to/council/hooks/lifecycle.py AfterTool"}]}],
    "AfterAgent":   [{"hooks": [{"type": "command", "command": "python /path/to/council/hooks/lifecycle.py AfterAgent"}]}],
    "PreCompress":  [{"hooks": [{"type": "command", "command": "python /path/to/council/hooks/lifecycle.py PreCompress"}]}]
  }
}
"""

import json
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from council.context import CouncilContext
from council.diagnostics import log_debug, setup_component_logging
from council.hook_router import handle_hook


def main() -> int:
    setup_component_logging("hooks")
    event = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        payload = json.loads(sys.stdin.read() or "{}")
    except ValueError as e:
        log_debug("hooks", "invalid hook payload", e)
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    try:
        reply = handle_hook(CouncilContext.from_env(), payload, event)
    except Exception as e:
        # The host must always get an answer.
        log_debug("hooks", "hook failed", e)
        reply = {"decision": "allow"}
    out = sys.__stdout__ or sys.stdout
    out.write(json.dumps(reply, ensure_ascii=False) + "\n")
    out.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
