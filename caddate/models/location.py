from sqlalchemy import Column, String, Float, Boolean, DateTime, ForeignKey, Index

from caddate.core.db import Base


class UserLocation(Base):
    __tablename__ = "user_locations"

    user_id = Column(
        String,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    # null until the first fix arrives (sharing can be toggled before that)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    accuracy = Column(Float, nullable=True)

    is_sharing = Column(Boolean, nullable=False, default=False)
    last_updated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_user_locations_sharing_fresh", "is_sharing", "last_updated_at"),
    )

    @property
    def has_coordinate(self) -> bool:
        return self.latitude is not None and self.longitude is not None
