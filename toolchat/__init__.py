"""toolchat - a tool-calling conversation loop for local language models."""

__version__ = "0.1.0"
