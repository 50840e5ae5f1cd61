from .accounts import Package, User, ROLE_USER, ROLE_ADMIN, ROLES
from .sessions import BrowserSession, DesktopToken
from .security import SecurityEvent

__all__ = [
    'Package', 'User', 'ROLE_USER', 'ROLE_ADMIN', 'ROLES',
    'BrowserSession', 'DesktopToken',
    'SecurityEvent',
]
