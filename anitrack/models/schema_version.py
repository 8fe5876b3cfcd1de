from sqlalchemy import Column, Integer

from anitrack.database import Base


class SchemaVersion(Base):
    __tablename__ = "schema_version"

    # Single row; advanced by exactly one per applied migration step
    version = Column(Integer, primary_key=True)

    def __repr__(self):
        return f"<SchemaVersion {self.version}>"
