"""FocusFlow: document-grounded step-by-step plans with conversational refinement."""

__version__ = "0.1.0"
