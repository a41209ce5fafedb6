# Safekeep - Safe Loader (interactive unlock)
#
# NeedPassword -> Unlocking -> Unlocked | Failed
#
# The password is prompted once and cached for the loader's lifetime.
# A failed decrypt is retried only while load_tries < max_load_tries;
# max_load_tries starts at 0 and grows by one per remember_password()
# call, so a loader makes exactly max_load_tries + 1 unlock attempts.
# AlreadyRunning and every other error abort immediately.

import logging
from typing import Callable, Optional

from .backends import BackendClient, new_backend_client
from .config import Config, EncryptionConfig, StorageConfig
from .crypto import CryptoClient, new_crypto_client
from .errors import (
    AlreadyInitialized,
    AuthenticationFailed,
    NotInitialized,
    PasswordMismatch,
    SafeError,
)
from .safe import Safe
from .utils import get_password_input

logger = logging.getLogger(__name__)

PasswordPrompt = Callable[[str], bytes]
BackendFactory = Callable[[StorageConfig], BackendClient]
CryptoFactory = Callable[[EncryptionConfig], CryptoClient]


class SafeLoader:
    """
    Unlocks the configured safe, prompting for the master password.

    Args:
        config: Validated configuration
        writable: Take the writable lock (commands that save)
        prompt: Masked password prompt, message -> bytes
        backend_factory: Builds the backend from config.storage
        crypto_factory: Builds the crypto client from config.encryption
    """

    def __init__(
        self,
        config: Config,
        writable: bool = False,
        prompt: PasswordPrompt = get_password_input,
        backend_factory: BackendFactory = new_backend_client,
        crypto_factory: CryptoFactory = new_crypto_client,
    ):
        self.config = config
        self.writable = writable
        self.prompt = prompt
        self.backend_factory = backend_factory
        self.crypto_factory = crypto_factory

        self.max_load_tries = 0
        self.load_tries = 0
        self._password: Optional[bytes] = None

    def remember_password(self) -> None:
        """Allow one more re-prompt after a failed unlock."""
        self.max_load_tries += 1

    def load(self) -> Safe:
        """
        Unlock the configured safe.

        Raises:
            NotInitialized: No safe stored at the configured location
            AlreadyRunning: Writable lock held by another process
            AuthenticationFailed: Every allowed attempt used a wrong password
        """
        backend = self.backend_factory(self.config.storage)
        if not backend.exists():
            raise NotInitialized()
        return self.load_with_backend(backend)

    def load_with_backend(self, backend: BackendClient) -> Safe:
        # AlreadyRunning propagates unchanged, never retried
        backend.set_writable(self.writable)
        try:
            crypto = self.crypto_factory(self.config.encryption)
            while True:
                if self._password is None:
                    self._password = self.prompt(
                        f"Enter your master password for safe '{backend.safe_location()}'"
                    )

                try:
                    return Safe.load(self._password, backend, crypto, self.config)
                except AuthenticationFailed:
                    if self.max_load_tries > self.load_tries:
                        # Forget the bad password so the next pass prompts again
                        self._password = None
                        self.load_tries += 1
                        logger.debug("Unlock attempt %d failed, retrying", self.load_tries)
                        continue
                    raise
        except BaseException:
            # The lock must not outlive a load that did not return a Safe
            backend.close()
            raise


def read_master_password_confirmed(prompt: PasswordPrompt, new: bool = False) -> bytes:
    """
    Ask for a master password twice.

    Raises:
        SafeError: The password is empty
        PasswordMismatch: The two entries differ
    """
    add = "new " if new else ""
    password = prompt(
        f"Please set a {add}master password. This is the only password you need to remember"
    )
    if not password:
        raise SafeError("Master password must not be empty")
    password_confirm = prompt(f"Please confirm your {add}master password")
    if password != password_confirm:
        raise PasswordMismatch()
    return password


def initialize_safe(
    config: Config,
    prompt: PasswordPrompt = get_password_input,
    backend_factory: BackendFactory = new_backend_client,
    crypto_factory: CryptoFactory = new_crypto_client,
) -> str:
    """
    Create a new empty safe at the configured location.

    Returns:
        The safe location

    Raises:
        AlreadyInitialized: A safe already exists (nothing is written)
        AlreadyRunning: Writable lock held by another process
        PasswordMismatch: Confirmation differed from the first entry
    """
    backend = backend_factory(config.storage)
    if backend.exists():
        raise AlreadyInitialized()

    backend.set_writable(True)
    try:
        password = read_master_password_confirmed(prompt)
        Safe.initialize(password, backend, crypto_factory(config.encryption), config)
    finally:
        backend.close()
    return backend.safe_location()
