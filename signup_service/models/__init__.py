# signup_service/models/__init__.py

from .event import Event
from .event_instance import EventInstance
from .signup import Signup
from .notification import Notification
