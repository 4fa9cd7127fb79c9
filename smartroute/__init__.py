"""
smartroute - score-driven LLM provider routing.
"""

__version__ = "0.1.0"
__logo__ = "🧭"
