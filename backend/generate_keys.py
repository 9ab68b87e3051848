"""Generate AUTH_JWT_SECRET and TOKEN_ENCRYPTION_KEY into backend/.env from .env.example."""

import os
import secrets

from cryptography.fernet import Fernet

GENERATED_KEYS = ("AUTH_JWT_SECRET", "TOKEN_ENCRYPTION_KEY")


def main():
    values = {
        "AUTH_JWT_SECRET": secrets.token_urlsafe(32),
        "TOKEN_ENCRYPTION_KEY": Fernet.generate_key().decode(),
    }
    for key, value in values.items():
        print(f"Generated {key}: {value}")

    template_path = ".env.example"
    env_path = ".env"

    if not os.path.exists(template_path):
        print(f"Error: {template_path} not found. Please ensure it exists.")
        return

    with open(template_path, "r") as f:
        lines = f.read().splitlines()

    new_lines = []
    for line in lines:
        key = line.split("=", 1)[0]
        if key in GENERATED_KEYS:
            new_lines.append(f"{key}={values[key]}")
        else:
            new_lines.append(line)

    with open(env_path, "w") as f:
        f.write("\n".join(new_lines) + "\n")

    print(f"Successfully wrote to {env_path}")


if __name__ == "__main__":
    main()
