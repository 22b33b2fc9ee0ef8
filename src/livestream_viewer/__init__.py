"""Keeps an always-on display on the livestream or on a looping placeholder."""

APP_VERSION = "2024.09"

__all__ = ["APP_VERSION"]
