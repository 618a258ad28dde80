"""WorkVoice: Trust & Safety moderation for workplace feedback."""

__version__ = "0.1.0"
