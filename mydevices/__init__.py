"""mydevices - command-line client for the myDevices IoT platform.

The bulk import pipeline maps CSV provisioning sheets onto a location
hierarchy and devices, then reconciles them against the platform.
"""

__version__ = "0.4.0"
