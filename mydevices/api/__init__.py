"""REST client for the myDevices platform."""

from mydevices.api.client import ApiClient, ApiError
from mydevices.api.resources import MyDevicesApi

__all__ = ["ApiClient", "ApiError", "MyDevicesApi"]
