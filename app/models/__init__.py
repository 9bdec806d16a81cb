from app.models.user import User
from app.models.room import Room
from app.models.room_member import RoomMember
from app.models.progress import Progress

__all__ = ["User", "Room", "RoomMember", "Progress"]
