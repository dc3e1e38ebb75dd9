"""SQLAlchemy models for the billing backend.

All models are imported here so that ``Base.metadata`` sees every table.
If you add a new model, import it in this file.
"""

from app.models.subscription import Subscription

__all__ = [
    "Subscription",
]
