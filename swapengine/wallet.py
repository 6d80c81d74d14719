"""
Custodial signer.

Wraps a solders Keypair for the lifetime of one trade. Invalid key material
fails at construction so no venue call is ever made with a broken signer.

Usage:
    signer = KeypairSigner.from_file("~/.config/solana/id.json")
    signer = KeypairSigner.from_base58(secret)
"""
import json
import logging
from pathlib import Path
from typing import Union

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

logger = logging.getLogger(__name__)


class KeypairSigner:
    """Signer backed by an in-memory ed25519 keypair."""

    def __init__(self, keypair: Keypair):
        if not isinstance(keypair, Keypair):
            raise ValueError("KeypairSigner requires a solders Keypair")
        self._keypair = keypair

    @classmethod
    def from_bytes(cls, secret: Union[bytes, list]) -> "KeypairSigner":
        """Build from the 64-byte secret (Solana CLI layout)."""
        raw = bytes(secret)
        if len(raw) != 64:
            raise ValueError(f"Keypair secret must be 64 bytes, got {len(raw)}")
        try:
            return cls(Keypair.from_bytes(raw))
        except Exception as e:
            raise ValueError(f"Invalid keypair bytes: {e}") from e

    @classmethod
    def from_base58(cls, secret: str) -> "KeypairSigner":
        try:
            raw = base58.b58decode(secret.strip())
        except ValueError as e:
            raise ValueError(f"Invalid base58 secret: {e}") from e
        return cls.from_bytes(raw)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "KeypairSigner":
        """Load a Solana CLI keypair JSON file (array of 64 ints)."""
        keypair_path = Path(path).expanduser()
        with open(keypair_path) as f:
            secret = json.load(f)
        if not isinstance(secret, list):
            raise ValueError(f"{keypair_path} is not a Solana keypair file")
        signer = cls.from_bytes(secret)
        logger.info(f"Loaded signer {signer.public_key[:8]}...")
        return signer

    @property
    def keypair(self) -> Keypair:
        return self._keypair

    @property
    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    @property
    def public_key(self) -> str:
        return str(self._keypair.pubkey())

    def __repr__(self) -> str:
        return f"KeypairSigner({self.public_key[:8]}...)"
