"""Azure NetApp Files volume provisioning for container orchestrators."""

__version__ = "1.0.0"
