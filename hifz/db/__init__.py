from hifz.db.models import Base, ReviewRecordRow, SRSCardRecord
from hifz.db.card_storage import CardStorage

__all__ = [
    "Base",
    "SRSCardRecord",
    "ReviewRecordRow",
    "CardStorage",
]
