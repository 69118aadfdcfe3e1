"""
Property agent for conversational real estate search in Nepal.

This package contains the single-pass reasoning agent, its tool registry,
the trace parser that turns one completion into typed steps, and the
heuristics used for clarification detection and preference extraction.
"""
