REDIS_SESSION_KEY = "session:{token}" # hash - token, connection_id, username, user_id
REDIS_ROOMS_KEY = "rooms" # hash - room name -> password ("" = open)
REDIS_ROOM_MEMBERS_KEY = "room:members:{room}" # room name - set of user IDs
REDIS_USER_ROOMS_KEY = "user:rooms:{user_id}" # user id - set of room names
REDIS_MESSAGE_ID_KEY = "messages:next_id" # counter for message ids
REDIS_MESSAGE_KEY = "message:{message_id}" # message id - message hash
REDIS_ROOM_MESSAGES_KEY = "room:messages:{room}" # room name - zset of message ids scored by timestamp
REDIS_PRIVATE_MESSAGES_KEY = "private:messages:{pair}" # sorted user id pair - zset of message ids
REDIS_USER_MESSAGES_KEY = "user:messages:{user_id}" # author user id - set of message ids

# **Example `message:{id}` hash fields**
# - `id` = integer, from INCR messages:next_id
# - `from_user_id`, `from_user_name` = author snapshot at send time
# - `to_user_id` = recipient user id (private only)
# - `room` = room name (room messages only)
# - `content` = message text
# - `is_private` = "1" or "0"
# - `timestamp` = ISO timestamp, `score` = epoch seconds used for ordering


def private_pair(user_a: str, user_b: str) -> str:
    """Order-independent key fragment for a private conversation."""
    first, second = sorted((user_a, user_b))
    return f"{first}:{second}"
