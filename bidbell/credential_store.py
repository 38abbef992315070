"""
Local credential store for the session bearer token.

Stores the access token issued by the auction site's auth service using
Fernet encryption. The master key is auto-generated on first use and
stored locally with owner-only permissions.

The store is also the default auth collaborator of the delivery
coordinator: ``token_provider()`` returns a callable that yields the
current token (the ``BIDBELL_TOKEN`` environment variable wins over the
stored token).
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from bidbell.config import get_default_data_dir


logger = logging.getLogger("bidbell.credentials")

ENV_TOKEN = "BIDBELL_TOKEN"


class CredentialStore:
    """
    Secure local storage for the bearer token.

    Directory structure:
        <data dir>/
            master.key      # Fernet encryption key (auto-generated)
            token.enc       # Encrypted token and metadata

    Usage:
        >>> store = CredentialStore()
        >>> store.store_token("eyJhbGciOi...", user_email="me@example.com")
        >>> token = store.get_token()
        >>> store.clear_token()
    """

    MASTER_KEY_FILE = "master.key"
    TOKEN_FILE = "token.enc"

    def __init__(self, base_dir: Optional[Path] = None):
        """
        Initialize credential store.

        Args:
            base_dir: Base directory for credential storage (defaults to the
                platform data directory)
        """
        self.base_dir = Path(base_dir) if base_dir else get_default_data_dir()
        self._fernet: Optional[Fernet] = None

    def _ensure_directories(self) -> None:
        """Create the base directory (owner only) if it doesn't exist."""
        self.base_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.base_dir, 0o700)

    @property
    def master_key_path(self) -> Path:
        """Path to master key file."""
        return self.base_dir / self.MASTER_KEY_FILE

    @property
    def token_path(self) -> Path:
        """Path to the encrypted token file."""
        return self.base_dir / self.TOKEN_FILE

    def has_master_key(self) -> bool:
        """Check if master key exists."""
        return self.master_key_path.exists()

    def _load_or_create_master_key(self) -> bytes:
        """
        Load existing master key or create a new one.

        Returns:
            Master key as bytes
        """
        self._ensure_directories()

        if self.master_key_path.exists():
            with open(self.master_key_path, "rb") as f:
                return f.read()

        key = Fernet.generate_key()
        with open(self.master_key_path, "wb") as f:
            f.write(key)
        os.chmod(self.master_key_path, 0o600)
        return key

    def _get_fernet(self) -> Fernet:
        """Get or create Fernet cipher."""
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_master_key())
        return self._fernet

    # -------------------------------------------------------------------------
    # Token Operations
    # -------------------------------------------------------------------------

    def store_token(self, token: str, user_email: Optional[str] = None) -> None:
        """
        Store the bearer token, replacing any previous one.

        Args:
            token: Access token issued by the auth service
            user_email: Optional account label shown by the CLI

        Raises:
            ValueError: If token is empty
        """
        if not token or not token.strip():
            raise ValueError("Token must not be empty")

        self._ensure_directories()
        fernet = self._get_fernet()

        data = {
            "token": token.strip(),
            "user_email": user_email,
            "stored_at": datetime.now(timezone.utc).isoformat(),
        }
        encrypted = fernet.encrypt(json.dumps(data).encode("utf-8"))

        with open(self.token_path, "wb") as f:
            f.write(encrypted)
        os.chmod(self.token_path, 0o600)

    def _load_token_data(self) -> Optional[Dict[str, Any]]:
        """
        Load and decrypt the stored token data.

        Returns:
            Data dictionary or None if missing or unreadable
        """
        if not self.token_path.exists():
            return None

        fernet = self._get_fernet()
        with open(self.token_path, "rb") as f:
            encrypted = f.read()

        try:
            return json.loads(fernet.decrypt(encrypted).decode("utf-8"))
        except (InvalidToken, ValueError) as e:
            logger.warning(f"Stored token is unreadable, ignoring it: {type(e).__name__}")
            return None

    def get_token(self) -> Optional[str]:
        """Get the stored token, or None if not logged in."""
        data = self._load_token_data()
        return data.get("token") if data else None

    def get_metadata(self) -> Optional[Dict[str, Any]]:
        """Get the metadata stored with the token (without the token itself)."""
        data = self._load_token_data()
        if not data:
            return None
        return {k: v for k, v in data.items() if k != "token"}

    def has_token(self) -> bool:
        """Check if a token file exists."""
        return self.token_path.exists()

    def clear_token(self) -> bool:
        """
        Delete the stored token.

        Returns:
            True if a token was deleted, False if none was stored
        """
        if self.token_path.exists():
            self.token_path.unlink()
            return True
        return False

    def token_provider(self) -> Callable[[], Optional[str]]:
        """
        Build the auth callable handed to the delivery coordinator.

        The token is read on every call so a re-login is picked up without
        restarting the client.
        """
        def provide() -> Optional[str]:
            return os.environ.get(ENV_TOKEN) or self.get_token()

        return provide
