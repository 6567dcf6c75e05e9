"""
Genera el par de claves RSA para firmar los JWT con RS256.

    python scripts/generate_keys.py [--force]

Luego configurar en .env:
    JWT_ALGORITHM=RS256
    JWT_PRIVATE_KEY_PATH=./keys/private.pem
    JWT_PUBLIC_KEY_PATH=./keys/public.pem
"""

import sys
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

KEYS_DIR = Path(__file__).resolve().parent.parent / "keys"


def generate_rsa_keys(force: bool = False) -> None:
    KEYS_DIR.mkdir(exist_ok=True)
    private_key_path = KEYS_DIR / "private.pem"
    public_key_path = KEYS_DIR / "public.pem"

    if private_key_path.exists() and not force:
        print(f"Las claves ya existen en {KEYS_DIR}; use --force para regenerarlas")
        return

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    private_key_path.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    private_key_path.chmod(0o600)
    public_key_path.write_bytes(
        private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )

    print(f"Clave privada: {private_key_path}")
    print(f"Clave pública: {public_key_path}")
    print("Configure JWT_ALGORITHM=RS256 en .env para usarlas")


if __name__ == "__main__":
    generate_rsa_keys(force="--force" in sys.argv[1:])
