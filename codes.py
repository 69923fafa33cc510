import hashlib

CODE_LENGTH = 10


def derive_code(chat_id, salt: str) -> str:
    """Short, stable code for a chat id.

    First 10 hex chars of sha256(str(chat_id) + salt). About 40 bits, meant to
    be copied into a web form, not used as a credential: collisions become
    plausible once the user base reaches the hundreds of thousands.
    """
    digest = hashlib.sha256((str(chat_id) + salt).encode("utf-8")).hexdigest()
    return digest[:CODE_LENGTH]
