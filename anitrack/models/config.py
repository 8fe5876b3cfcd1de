from sqlalchemy import Column, Integer, String, Text
import json

from anitrack.database import Base, UTCDateTime, utcnow


class Config(Base):
    __tablename__ = "config"

    id = Column(Integer, primary_key=True)
    key = Column(String, unique=True, nullable=False)
    value = Column(Text)
    module = Column(String, default="core")  # "core", "detection", "metadata"
    data_type = Column(String, default="string")  # string, integer, float, boolean, json
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)
    description = Column(String, nullable=True)

    def __repr__(self):
        return f"<Config {self.key}={(self.value or '')[:20]}...>"

    @property
    def typed_value(self):
        """Returns value converted to its declared type"""
        if self.value is None:
            return None
        if self.data_type == "boolean":
            return self.value.lower() in ("true", "1", "yes")
        elif self.data_type == "integer":
            return int(self.value)
        elif self.data_type == "float":
            return float(self.value)
        elif self.data_type == "json":
            return json.loads(self.value)
        return self.value
