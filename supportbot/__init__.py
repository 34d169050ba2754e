"""
Support chatbot backend: turn screening, structured completion, paced
paragraph streaming and long-term memory distillation.
"""

__version__ = "1.0.0"
