"""
chatbridge - Cross-Provider Chat Streaming Bridge

Builds requests for OpenAI-compatible, OpenAI responses, Anthropic and
Gemini endpoints from one canonical conversation, repairs tool call
pairing in the outgoing history, and decodes every provider's reply into
one canonical chunk sequence.
"""

__version__ = "0.1.0"
