"""
LLM integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Answer "why does this restaurant suit the group?" questions.
- Keep a short per-conversation transcript so follow-ups share context.
"""
