"""Configuration defaults for toolchat."""

import os

# Default provider
DEFAULT_PROVIDER = "ollama"

# Ollama defaults
DEFAULT_OLLAMA_MODEL = "llama3.1:latest"
DEFAULT_OLLAMA_HOST = os.environ.get("OLLAMA_HOST", "http://localhost:11434")

# OpenAI-compatible servers (vLLM, llama.cpp, LocalAI) don't need a real key
DEFAULT_OPENAI_API_KEY = "EMPTY"

# Loop limits
DEFAULT_MAX_TURNS = 10
DEFAULT_TOOL_TIMEOUT = None

# REPL history
HISTORY_FILE = ".toolchat_history"
