
import base64
import json


def b64encode(value) -> str:
    return base64.b64encode(str(value).encode()).decode()

def to_json(data, **kwargs) -> str:
    return json.dumps(data, **kwargs)
