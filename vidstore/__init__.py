"""vidstore: sessions, field encryption and provisioning for the video storefront."""

__version__ = "0.3.0"
