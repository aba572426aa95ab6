"""Host-side interfaces: grid data access and result notification."""

from .accessor import DataAccessor, DataFrameAccessor
from .sink import CallbackSink, CollectingSink, NotificationSink
