"""
Services Layer

Bracket engine services that:
- Accept a BracketStorage plus plain inputs (ids, partial dicts, seeding lists)
- Return models, dataclasses or plain dicts
- Do NOT depend on HTTP request/response objects
- Validate before they write, raising bracket_engine.errors exceptions
"""
