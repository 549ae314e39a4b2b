"""
Declarative base shared by every Ome model.

Keep this module free of model and repository imports; ome.models and the
test fixtures import it to build the metadata.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
