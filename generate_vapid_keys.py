"""
Generate a VAPID key pair for renewal reminder pushes.

Run once:
    python generate_vapid_keys.py >> .env

Both keys are printed as URL-safe base64 without padding; the private key is
the raw 32-byte EC scalar, which pywebpush accepts directly.
"""
import base64

from py_vapid import Vapid


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def application_server_key(vapid: Vapid) -> str:
    """Uncompressed P-256 point, as the browser's PushManager expects it."""
    numbers = vapid.public_key.public_numbers()
    return _b64url(b"\x04" + numbers.x.to_bytes(32, "big") + numbers.y.to_bytes(32, "big"))


def raw_private_key(vapid: Vapid) -> str:
    return _b64url(vapid.private_key.private_numbers().private_value.to_bytes(32, "big"))


def main():
    vapid = Vapid()
    vapid.generate_keys()
    print(f"VAPID_PUBLIC_KEY={application_server_key(vapid)}")
    print(f"VAPID_PRIVATE_KEY={raw_private_key(vapid)}")


if __name__ == "__main__":
    main()
