"""uptimesync — declarative sync of Better Stack Uptime resources."""

__version__ = "0.3.0"
