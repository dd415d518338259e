"""Sentiment, clarity and reputation-risk scoring over a hybrid
on-device/cloud language-model layer."""

__version__ = "1.0.0"
