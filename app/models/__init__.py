"""
Model package.

SQLModel.metadata is populated only when the table models are imported.
`app.db.engine.create_db_and_tables` imports this module before calling
`create_all`, so every `table=True` model must be imported here.
"""

# Import table models so SQLModel registers them in metadata.
from app.profile.models import Profile  # noqa: F401
