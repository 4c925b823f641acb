#!/usr/bin/env python3
"""Mint a bearer token for local development.

Usage: python scripts/issue_dev_token.py <user_id> [email] [--hours N]

The token is signed with AUTH_JWT_SECRET from the environment, so it is
accepted by a locally running API and by `flask dispatch --token`.
"""
import sys
import os
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import jwt  # noqa: E402

from toonify import create_app  # noqa: E402

app = create_app()


def issue_token(user_id, email="", hours=12):
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "email": email,
        "aud": app.config["AUTH_JWT_AUDIENCE"],
        "iat": now,
        "exp": now + timedelta(hours=hours),
    }
    return jwt.encode(
        claims,
        app.config["AUTH_JWT_SECRET"],
        algorithm=app.config["AUTH_JWT_ALGORITHM"],
    )


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    if not args:
        print(__doc__)
        sys.exit(1)
    if not app.config["AUTH_JWT_SECRET"]:
        print("AUTH_JWT_SECRET is not set")
        sys.exit(1)

    hours = 12
    if "--hours" in sys.argv:
        hours = int(sys.argv[sys.argv.index("--hours") + 1])
        args = [a for a in args if a != str(hours)]

    user_id = args[0]
    email = args[1] if len(args) > 1 else ""
    print(issue_token(user_id, email, hours))
