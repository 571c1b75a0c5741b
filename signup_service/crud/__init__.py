# signup_service/crud/__init__.py

from .crud_event import event
from .crud_event_instance import event_instance
from .crud_notification import notification
from .crud_signup import signup
