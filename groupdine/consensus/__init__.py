"""
Group consensus engine.

Responsibilities:
- Aggregate every participant's preference into one group summary.
- Build a natural-language search from that summary.
- Score and rank candidates against each individual preference.
- Ask the reasoning provider to justify the top picks.
"""
