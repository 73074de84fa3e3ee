#!/usr/bin/env python3
"""
Generate an HS256 identity token for exercising appbridge-session locally.

The token mimics an App Bridge session token: signed with the app's API
secret, audience set to the API key, destination set to the shop.

Usage:
    export APPBRIDGE_API_KEY="your-api-key"
    export APPBRIDGE_API_SECRET_KEY="your-api-secret"
    python scripts/generate-identity-token.py shop-1.myshopify.com [user-id]
"""
import os
import sys
import time
import uuid
from datetime import datetime

from jose import jwt

API_KEY = os.getenv("APPBRIDGE_API_KEY", "")
API_SECRET_KEY = os.getenv("APPBRIDGE_API_SECRET_KEY", "")
if not API_KEY or not API_SECRET_KEY:
    print("ERROR: APPBRIDGE_API_KEY and APPBRIDGE_API_SECRET_KEY are required", file=sys.stderr)
    sys.exit(1)

if len(sys.argv) < 2:
    print(__doc__, file=sys.stderr)
    sys.exit(1)

shop = sys.argv[1]
user_id = sys.argv[2] if len(sys.argv) > 2 else "1"
host = os.getenv("APPBRIDGE_HOST", "http://localhost:8000")

# Identity tokens live for one minute
now = int(time.time())
claims = {
    "iss": f"https://{shop}/admin",
    "dest": f"https://{shop}",
    "aud": API_KEY,
    "sub": user_id,
    "exp": now + 60,
    "nbf": now,
    "iat": now,
    "jti": str(uuid.uuid4()),
    "sid": uuid.uuid4().hex,
}

token = jwt.encode(claims, API_SECRET_KEY, algorithm="HS256")

print("=" * 80)
print("Identity Token (HS256)")
print("=" * 80)
print("\nClaims:")
print(f"  dest: {claims['dest']}")
print(f"  aud:  {claims['aud']}")
print(f"  sub:  {claims['sub']}")
print(f"  exp:  {datetime.fromtimestamp(claims['exp']).isoformat()} (60 seconds)")
print("\nToken:")
print(token)
print("\nUsage:")
print(f'  curl -H "Authorization: Bearer {token}" {host}/api/session')
print("=" * 80)
