import socketio

from studygroup.core.config import CORS_ORIGINS

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=CORS_ORIGINS,
)

socket_app = socketio.ASGIApp(sio)


def group_room(group_id: int) -> str:
    return f"group:{group_id}"


async def publish(room: str, payload: dict) -> None:
    await sio.emit("message", {"room": room, "data": payload}, room=room)
