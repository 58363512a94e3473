# x402_bazaar/x402/keys.py
"""
Funding key resolution.

The key that authorizes a payment is taken from the first source that
supplies one, in this order:
1. An explicit key (--key flag or tool argument)
2. The AGENT_PRIVATE_KEY environment variable
3. The privateKey field of ~/.x402-bazaar/wallet.json

A source that supplies a malformed key makes the whole resolution invalid;
weaker sources are never consulted in that case. The wallet file is only
ever read.
"""
import json
import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Tuple

from x402_bazaar.core.config import settings

logger = logging.getLogger(__name__)

KEY_PATTERN = re.compile(r"^0x[a-f0-9]{64}$")


class KeyStatus(Enum):
    FOUND = "found"
    ABSENT = "absent"
    INVALID = "invalid"


class KeySource(Enum):
    EXPLICIT = "explicit"
    ENVIRONMENT = "environment"
    WALLET_FILE = "wallet_file"


@dataclass(frozen=True)
class KeyResolution:
    """Outcome of a key lookup. `key` is set only when status is FOUND."""
    status: KeyStatus
    key: Optional[str] = None
    source: Optional[KeySource] = None

    @property
    def found(self) -> bool:
        return self.status is KeyStatus.FOUND

    def __repr__(self) -> str:
        # Never expose the key itself
        masked = "***" if self.key else None
        return f"KeyResolution(status={self.status.value}, key={masked}, source={self.source})"


def normalize_key(raw: Optional[str]) -> Optional[str]:
    """
    Normalize a private key to 0x followed by 64 lowercase hex characters.

    Args:
        raw: Key as supplied, with or without 0x prefix

    Returns:
        The normalized key, or None if the value is not a valid key
    """
    if not isinstance(raw, str):
        return None
    key = raw.strip()
    if not key:
        return None
    if not key.lower().startswith("0x"):
        key = "0x" + key
    key = "0x" + key[2:].lower()
    if not KEY_PATTERN.match(key):
        return None
    return key


def mask_key(key: str) -> str:
    """Masked form safe for display, e.g. 0x1234...cdef."""
    if len(key) <= 10:
        return "***"
    return f"{key[:6]}...{key[-4:]}"


def read_wallet_file(path: Path) -> Optional[str]:
    """
    Read the raw privateKey field of a wallet file.

    Read failures are non-fatal: a missing file, unreadable file, invalid JSON
    or missing field all return None.
    """
    if not path.exists():
        logger.debug(f"No wallet file at {path}")
        return None

    try:
        data = json.loads(path.read_text())
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Cannot read wallet file {path}: {e}")
        return None
    except json.JSONDecodeError as e:
        logger.warning(f"Wallet file {path} is not valid JSON: {e}")
        return None

    if not isinstance(data, dict):
        logger.warning(f"Wallet file {path} does not contain a JSON object")
        return None

    value = data.get("privateKey")
    if value is None or (isinstance(value, str) and not value.strip()):
        logger.warning(f"Wallet file {path} has no privateKey field")
        return None
    return value


# A strategy returns the raw key from its source, or None if the source is empty
KeyStrategy = Tuple[KeySource, Callable[[], Optional[str]]]


class FundingKeyResolver:
    """
    Ordered fallback over key sources.

    Args:
        environ: Mapping to read the environment variable from (os.environ by default)
        wallet_path: Wallet file location (settings.WALLET_FILE_PATH by default)
        env_var: Name of the environment variable (settings.FUNDING_KEY_ENV_VAR by default)
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        wallet_path: Optional[Path] = None,
        env_var: Optional[str] = None,
    ):
        self._environ = environ
        self._wallet_path = wallet_path
        self._env_var = env_var

    @property
    def env_var(self) -> str:
        return self._env_var or settings.FUNDING_KEY_ENV_VAR

    @property
    def wallet_path(self) -> Path:
        return Path(self._wallet_path or settings.WALLET_FILE_PATH)

    def _from_environment(self) -> Optional[str]:
        environ = self._environ if self._environ is not None else os.environ
        value = environ.get(self.env_var)
        if value is None or not value.strip():
            return None
        return value

    def _from_wallet_file(self) -> Optional[str]:
        return read_wallet_file(self.wallet_path)

    def strategies(self, explicit_key: Optional[str] = None) -> List[KeyStrategy]:
        return [
            (KeySource.EXPLICIT, lambda: explicit_key if explicit_key and explicit_key.strip() else None),
            (KeySource.ENVIRONMENT, self._from_environment),
            (KeySource.WALLET_FILE, self._from_wallet_file),
        ]

    def resolve(self, explicit_key: Optional[str] = None) -> KeyResolution:
        """
        Resolve the funding key for this invocation.

        Args:
            explicit_key: Key passed on the command line or as a tool argument

        Returns:
            KeyResolution with status FOUND, ABSENT or INVALID
        """
        for source, lookup in self.strategies(explicit_key):
            raw = lookup()
            if raw is None:
                continue

            key = normalize_key(raw)
            if key is None:
                logger.warning(f"Funding key from {source.value} is malformed; refusing to fall back")
                return KeyResolution(KeyStatus.INVALID, source=source)

            logger.debug(f"Funding key resolved from {source.value}")
            return KeyResolution(KeyStatus.FOUND, key=key, source=source)

        logger.debug("No funding key configured")
        return KeyResolution(KeyStatus.ABSENT)
