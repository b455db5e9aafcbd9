"""
Issue a signed access token for calling the admin API.

Tokens are signed with JWT_SECRET, so this must run with the same environment
as the API server.

Typical usage (from this repo root):
  python scripts/issue_admin_token.py --user-id ops-1 --email ops@example.com
  python scripts/issue_admin_token.py --user-id ops-1 --minutes 15
"""

from __future__ import annotations

import sys
from pathlib import Path

# Allow running the script from any working directory by putting the repo root
# (which contains the `app/` package) on sys.path.
_REPO_ROOT = str(Path(__file__).resolve().parents[1])
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

import argparse

from app.services.auth_dependencies import issue_access_token
from app.services.exceptions import ValidationError
from app.services.roles import parse_role


def main(argv: list[str]) -> int:
    p = argparse.ArgumentParser(description="Issue an access token for the provisioning admin API.")
    p.add_argument("--user-id", required=True, help="Subject (sub) claim for the token.")
    p.add_argument("--email", help="Email claim for the token.")
    p.add_argument("--role", default="master_admin", help="Role claim (default: master_admin).")
    p.add_argument("--minutes", type=int, default=60, help="Lifetime in minutes (default: 60).")
    args = p.parse_args(argv)

    try:
        role = parse_role(args.role)
    except ValidationError as exc:
        print(exc.message, file=sys.stderr)
        return 2
    if args.minutes < 1:
        print("--minutes must be at least 1", file=sys.stderr)
        return 2

    print(issue_access_token(args.user_id, email=args.email, role=role.value, expires_minutes=args.minutes))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
