"""聊天目录 - in-memory chat and member directory for the chat client"""

__version__ = "1.0.0"
