"""mindloop model implementations.

Concrete ModelProtocol implementations for various providers. Provider
SDKs are imported when a model is instantiated, not here.
"""

from __future__ import annotations

from mindloop.models.auto import auto_configure_model

__all__ = ["auto_configure_model"]
