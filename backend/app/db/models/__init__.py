"""
Models package: re-exports Base and all models.

Import models here so Alembic's `target_metadata = Base.metadata`
picks up every table automatically.

When adding a new model:
    1. Create `app/db/models/<table_name>.py`
    2. Import it here
"""

from app.db.models.base import Base
from app.db.models.age_range import AgeRange
from app.db.models.dnc_number import DncNumber
from app.db.models.header_mapping import HeaderMapping
from app.db.models.project_file import ProjectFile
from app.db.models.variable_rule import ProjectVariableInclusion, VariableExclusion

__all__ = [
    "Base",
    "AgeRange",
    "DncNumber",
    "HeaderMapping",
    "ProjectFile",
    "ProjectVariableInclusion",
    "VariableExclusion",
]
