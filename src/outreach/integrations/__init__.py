"""Outreach Pipeline Integration Clients.

Client wrappers for the external providers the pipeline talks to: Apollo
for company and contact search, OpenAI for drafting and SendGrid for
delivery.

Client classes are imported lazily so that importing the package does not
pull in every provider SDK.
"""

import importlib
from typing import TYPE_CHECKING

_LAZY_EXPORTS = {
    "ApolloClient": ".apollo",
    "LLMClient": ".llm_client",
    "SendGridClient": ".sendgrid",
}

# For type checking, use actual imports
if TYPE_CHECKING:
    from .apollo import ApolloClient
    from .llm_client import LLMClient
    from .sendgrid import SendGridClient


def __getattr__(name: str):
    """Module-level __getattr__ for lazy imports."""
    module_name = _LAZY_EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    value = getattr(importlib.import_module(module_name, __name__), name)
    globals()[name] = value
    return value


__all__ = list(_LAZY_EXPORTS)
