"""Models package."""

from .user import User
from .auth_session import AuthSession
from .subscription import Subscription
from .credit_purchase import CreditPurchase
from .profile import Profile
from .education import Education
from .project import Project
from .skill import Skill
from .experience import Experience
