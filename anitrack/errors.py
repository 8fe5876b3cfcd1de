"""
Exception types shared across anitrack services
"""


class AnitrackError(Exception):
    """Base class for anitrack failures"""


class StoreError(AnitrackError):
    """Tracking store I/O or migration failure"""


class MigrationError(StoreError):
    """Schema migration could not be applied"""


class MetadataUnavailable(AnitrackError):
    """Metadata service could not answer; advisory only"""
