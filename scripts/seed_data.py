import json
from pathlib import Path
import sys


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from login_guard import db
from login_guard.config import load_config

seed_users = [
    ("alice", "Summer2024!", "alice@example.com"),
    ("bob", "Winter2023#", "bob@example.com"),
    ("carol", "N2v!e4Gh1@xQz9Lm", None),
    ("dave", "letmein42", "dave@example.com"),
]
hash_modes_cycle = ["argon2id", "bcrypt"]


def main():
    cfg = load_config("config.json")

    # db_url format: "sqlite:///./login_guard.db"
    db_path = cfg.db_url.replace("sqlite:///", "", 1) or "login_guard.db"
    db.init_db(db_path)

    users_out = []
    for idx, (username, pwd, email) in enumerate(seed_users):
        if db.get_user(username):
            print("skipping existing user", username)
            continue
        hash_mode = hash_modes_cycle[idx % len(hash_modes_cycle)]
        db.create_user(username=username, password=pwd, hash_mode=hash_mode, email=email, pepper=cfg.pepper)
        users_out.append({"username": username, "password": pwd, "email": email, "hash_mode": hash_mode})

    Path("data").mkdir(exist_ok=True)
    with open("data/users.json", "w", encoding="utf-8") as f:
        json.dump(users_out, f, indent=2)
    print("Seeded", len(users_out), "users -> data/users.json and database")


if __name__ == "__main__":
    main()
