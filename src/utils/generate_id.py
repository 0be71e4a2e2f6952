import secrets

def generate_message_id():
    # msg-<24 hex chars>, unique per process lifetime for all practical purposes
    return f"msg-{secrets.token_hex(12)}"

def generate_request_id():
    return f"req-{secrets.token_hex(8)}"
