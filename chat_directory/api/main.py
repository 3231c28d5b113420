"""
Chat Directory - FastAPI Application

Application shell exposing the member and chat directories of the
registered session over HTTP.
"""

from fastapi import FastAPI

from chat_directory import __version__

app = FastAPI(
    title="聊天目录",
    description="Chat Directory - chat list, contacts and ranked chat search",
    version=__version__,
)


@app.get("/")
async def root():
    return {"message": "Chat Directory API", "docs": "/docs"}


@app.get("/api/health")
async def health():
    """Health check endpoint"""
    return {"status": "ok"}


# Include routers
from chat_directory.api.routes import chats, members, search

app.include_router(members.router, prefix="/api/members", tags=["members"])
app.include_router(chats.router, prefix="/api/chats", tags=["chats"])
app.include_router(search.router, prefix="/api/search", tags=["search"])
