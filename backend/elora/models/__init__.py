from .auth import User, Role, RolePermission, UserRole, SessionToken
from .security import SecurityEvent
from .stores import Store, StoreStatus, PRIORITIES, generate_store_id

__all__ = [
    'User', 'Role', 'RolePermission', 'UserRole', 'SessionToken',
    'SecurityEvent',
    'Store', 'StoreStatus', 'PRIORITIES', 'generate_store_id',
]
