"""
Form wizard client state.

Python counterpart of the browser wizard: resumable local state and the
autosave protocol against the progress endpoint.
"""

from .client import WizardClient
from .state import LocalStateStore, WizardState

__all__ = ["WizardClient", "LocalStateStore", "WizardState"]
