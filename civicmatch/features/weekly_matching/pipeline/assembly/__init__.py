"""
Match assembly package.

Greedily pairs eligible users by score under a per-cycle cap.
"""

from .service import MatchAssembler, match_assembler

__all__ = ["MatchAssembler", "match_assembler"]
