"""
Yelp AI integration layer.

Responsibilities:
- Send natural-language restaurant searches to the Yelp AI chat API.
- Continue an existing conversation for follow-up questions and reservations.
- Translate the provider's response into typed candidate records.
"""
