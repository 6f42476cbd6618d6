from fastapi import HTTPException, WebSocketException, status
from fastapi.requests import HTTPConnection

from idengine.core import config

TOKEN_HEADER = "x-backend-token"


async def require_backend_token(connection: HTTPConnection) -> None:
    """Gate both the HTTP routes and /events on the shared backend token.

    Unset token means the backend only listens on localhost and is open.
    """
    token = config.BACKEND_TOKEN
    if not token or connection.headers.get(TOKEN_HEADER) == token:
        return
    if connection.scope["type"] == "websocket":
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")
