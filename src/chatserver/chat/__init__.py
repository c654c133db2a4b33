"""
=============================================================================
CHAT COMPONENTS
=============================================================================

What the server does with lines once the core has framed them:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  REGISTRY      who is connected, next client id, capacity           │
    │  BROADCASTER   one line → every session except the sender           │
    │  COMMANDS      /help /users /time /stats, private replies           │
    │  PROTOCOL      the exact text of every server line                  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .registry import Registry
from .broadcaster import Broadcaster
from .commands import Command, CommandInterpreter, parse_command
from . import protocol


__all__ = [
    "Registry",            # Membership + id counter
    "Broadcaster",         # Fan-out
    "Command",             # Parsed command line
    "CommandInterpreter",  # /help, /users, /time, /stats
    "parse_command",
    "protocol",            # Wire vocabulary
]
