import json
import sys

request = json.load(sys.stdin)
visitor = request["queryParams"].get("name") or request["cookies"].get("visitor") or "stranger"

print(json.dumps({
    "content": {"visitor": visitor},
    "cookies": [{"name": "visitor", "value": visitor, "path": "/", "httpOnly": True, "sameSite": "Lax"}],
}))
