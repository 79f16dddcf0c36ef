"""Re-export all models so Base.metadata sees them."""

from app.db.models.backlog import BacklogConnection, BacklogFormSettings
from app.db.models.form import Form
from app.db.models.magic_link import MagicLink
from app.db.models.submission import Submission
from app.db.models.subscription import Subscription
from app.db.models.user import User

__all__ = [
    "BacklogConnection",
    "BacklogFormSettings",
    "Form",
    "MagicLink",
    "Submission",
    "Subscription",
    "User",
]
