import json
import sys
import time

json.load(sys.stdin)
print(json.dumps({"now": time.time()}))
