"""
Session coordination.

Responsibilities:
- Own every session, participant and submitted preference.
- Serialize concurrent joins and submissions per session.
- Detect when everyone has submitted and track consensus status.
- Expire sessions once their TTL passes.
"""
