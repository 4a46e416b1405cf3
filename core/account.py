"""
Node Account Management
"""
from dataclasses import dataclass, field
from pathlib import Path
import re

from eth_account import Account

KEY_HEX_LENGTH = 64

_FULL_KEY = re.compile(rf"(0x)?[0-9a-fA-F]{{{KEY_HEX_LENGTH}}}")
_PARTIAL_KEY = re.compile(rf"(0x?)?[0-9a-fA-F]{{0,{KEY_HEX_LENGTH}}}")


@dataclass(frozen=True)
class NodeAccount:
    """
    Operating account of a running node.
    The key is generated and persisted by the node itself; this side only reads it.
    """
    address: str
    private_key: str = field(repr=False)

    @classmethod
    def from_private_key(cls, private_key: str) -> 'NodeAccount':
        """Derive the account from a hex private key, with or without 0x"""
        key = private_key.strip()
        if not key.startswith("0x"):
            key = f"0x{key}"
        try:
            address = Account.from_key(key).address
        except Exception as e:
            raise ValueError(f"Invalid private key: {e}") from e
        return cls(address=address, private_key=key)

    @classmethod
    def from_key_file(cls, key_path: Path) -> 'NodeAccount':
        """Load the account from the node's key file"""
        return cls.from_private_key(cls.read_key_file(key_path))

    @staticmethod
    def read_key_file(key_path: Path) -> str:
        """
        Stripped content of the key file, empty while it does not exist.
        Raises ValueError if the file is not text.
        """
        path = Path(key_path)
        if not path.is_file():
            return ""
        try:
            return path.read_text(encoding="utf-8").strip()
        except UnicodeDecodeError as e:
            raise ValueError(f"Key file {path} is not a text file") from e

    @staticmethod
    def is_complete_key(text: str) -> bool:
        return _FULL_KEY.fullmatch(text) is not None

    @staticmethod
    def is_partial_key(text: str) -> bool:
        """True for any prefix of a hex key, i.e. a key still being written"""
        return _PARTIAL_KEY.fullmatch(text) is not None

    @classmethod
    def key_file_ready(cls, key_path: Path) -> bool:
        """True once the node has written a complete hex key"""
        return cls.is_complete_key(cls.read_key_file(key_path))

    def __str__(self) -> str:
        return self.address
