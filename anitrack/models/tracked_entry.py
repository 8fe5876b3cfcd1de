from sqlalchemy import Column, Float, String, Text

from anitrack.database import Base, UTCDateTime
from anitrack.utils.episode_labels import parse_episode_ordinal


class TrackedEntry(Base):
    __tablename__ = "tracked_entries"

    show_id = Column(String, primary_key=True)  # ani-cli / AllAnime show id
    title = Column(Text, nullable=False)
    episode_label = Column(String, nullable=False)  # raw label, e.g. "13.5"
    episode_ordinal = Column(Float, nullable=True)  # numeric label, if any
    updated_at = Column(UTCDateTime, nullable=False, index=True)

    @classmethod
    def build(cls, show_id: str, title: str, episode_label: str) -> "TrackedEntry":
        label = (episode_label or "").strip()
        return cls(
            show_id=show_id,
            title=title,
            episode_label=label,
            episode_ordinal=parse_episode_ordinal(label),
        )

    def __repr__(self):
        return f"<TrackedEntry {self.show_id} '{self.title}' ep {self.episode_label}>"
