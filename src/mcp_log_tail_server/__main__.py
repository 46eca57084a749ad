"""Module entrypoint.

Allows:
    python -m mcp_log_tail_server
"""

from __future__ import annotations

from mcp_log_tail_server.server.tail_server import main

if __name__ == "__main__":
    main()
