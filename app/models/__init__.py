"""
Model package initializer.

Importing this package registers every ORM mapping so that
``Base.metadata.create_all`` sees all tables.
"""

# Import side-effects: register ORM mappings.
from app.models import (  # noqa: F401
    budget_alert,
    command_history,
    user,
)
