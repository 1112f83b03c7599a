"""voicegate: enforcement de la conversation vocale entre un humain et un assistant."""

__version__ = "0.3.0"
