import secrets
import uuid

def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def gen_token(nbytes: int = 16) -> str:
    # unguessable, path-safe
    return secrets.token_hex(nbytes)
