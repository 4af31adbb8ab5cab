"""Try one password against many identifiers and group the responses.

Known accounts, unknown login names and unknown emails should all land in a
single (status, body) group; more than one group means the host leaks which
identifiers exist.
"""
import argparse
import json
from collections import defaultdict
from pathlib import Path

import requests


def load_identifiers(users_path: Path, extra: list[str]) -> list[str]:
    identifiers = list(extra)
    if users_path.exists():
        for user in json.loads(users_path.read_text()):
            identifiers.append(user["username"])
            if user.get("email"):
                identifiers.append(user["email"])
    return identifiers


def spray(args) -> int:
    extra = [i for i in args.identifiers.split(",") if i] if args.identifiers else []
    identifiers = load_identifiers(Path(args.users), extra)
    session = requests.Session()
    groups = defaultdict(list)
    for total, identifier in enumerate(identifiers, start=1):
        payload = {"identifier": identifier, "password": args.password}
        resp = session.post(f"{args.base}/login", json=payload, timeout=5)
        print(f"[{total}] {identifier}:{args.password} -> {resp.status_code}")
        if resp.status_code == 200:
            print(f"SUCCESS {identifier} with {args.password}")
            continue
        groups[(resp.status_code, resp.text)].append(identifier)

    for (code, body), members in groups.items():
        print(f"{code} {body}: {len(members)} identifiers")
    if len(groups) > 1:
        print("Failure responses are distinguishable")
        return 1
    print("Failure responses are indistinguishable")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Password spraying / enumeration check")
    parser.add_argument("--users", default="data/users.json", help="path to users json")
    parser.add_argument("--identifiers", help="comma-separated extra identifiers, e.g. unknown names")
    parser.add_argument("--password", required=True, help="password to try against every identifier")
    parser.add_argument("--base", default="http://127.0.0.1:8000", help="API base URL")
    args = parser.parse_args()
    raise SystemExit(spray(args))


if __name__ == "__main__":
    main()
