"""
Pilbum Backend — Password Hashing
===================================

What:  scrypt password hashing stored as "salt:key".
How:   A random 16-byte salt (32 hex chars) and a 64-byte scrypt key
       (128 hex chars). The hex salt string itself is the scrypt salt input,
       so hashes written by earlier Pilbum releases verify unchanged.

scrypt cost parameters: N=16384, r=8, p=1 (~16 MiB of memory per hash).
Each hash takes tens of milliseconds of CPU, so request handlers use the
*_async variants, which run it in a worker thread.
"""

import asyncio
import hashlib
import hmac
import secrets

SALT_BYTES = 16
KEY_LENGTH = 64

_SCRYPT_N = 16384
_SCRYPT_R = 8
_SCRYPT_P = 1
_SCRYPT_MAXMEM = 64 * 1024 * 1024


def _derive(password: str, salt: str) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt.encode("utf-8"),
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
        maxmem=_SCRYPT_MAXMEM,
        dklen=KEY_LENGTH,
    )


def hash_password(password: str) -> str:
    """Hash a password; every call uses a fresh salt."""
    salt = secrets.token_hex(SALT_BYTES)
    return f"{salt}:{_derive(password, salt).hex()}"


def verify_password(password: str, stored_hash: str) -> bool:
    """
    Check a password against a stored "salt:key" hash.

    Malformed stored values verify as False instead of raising.
    """
    salt, sep, key_hex = (stored_hash or "").partition(":")
    if not sep or not salt or not key_hex:
        return False
    try:
        expected = bytes.fromhex(key_hex)
    except ValueError:
        return False
    if len(expected) != KEY_LENGTH:
        return False
    return hmac.compare_digest(_derive(password, salt), expected)


async def hash_password_async(password: str) -> str:
    return await asyncio.to_thread(hash_password, password)


async def verify_password_async(password: str, stored_hash: str) -> bool:
    return await asyncio.to_thread(verify_password, password, stored_hash)
