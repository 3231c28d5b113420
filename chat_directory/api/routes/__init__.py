"""API 路由模块"""

from chat_directory.api.routes import chats, members, search

__all__ = ["chats", "members", "search"]
