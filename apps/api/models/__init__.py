"""Models package."""

from .user import User
from .profile import Profile
from .social_account import SocialAccount
from .oauth_state import OAuthState
