"""Generate JWT_SECRET and TOKEN_ENCRYPTION_KEY and write them into .env.

Reads .env.template, fills in the two secrets, writes .env.
"""

import os
import secrets

from cryptography.fernet import Fernet

TEMPLATE_PATH = ".env.template"
ENV_PATH = ".env"


def main():
    jwt_secret = secrets.token_urlsafe(32)
    fernet_key = Fernet.generate_key().decode()

    print(f"Generated JWT_SECRET: {jwt_secret}")
    print(f"Generated TOKEN_ENCRYPTION_KEY: {fernet_key}")

    if not os.path.exists(TEMPLATE_PATH):
        print(f"{TEMPLATE_PATH} not found; add the values above to your environment manually.")
        return

    with open(TEMPLATE_PATH, "r") as f:
        lines = f.read().splitlines()

    filled = []
    for line in lines:
        if line.startswith("JWT_SECRET="):
            filled.append(f"JWT_SECRET={jwt_secret}")
        elif line.startswith("TOKEN_ENCRYPTION_KEY="):
            filled.append(f"TOKEN_ENCRYPTION_KEY={fernet_key}")
        else:
            filled.append(line)

    with open(ENV_PATH, "w") as f:
        f.write("\n".join(filled) + "\n")
    print(f"Successfully wrote to {ENV_PATH}")


if __name__ == "__main__":
    main()
