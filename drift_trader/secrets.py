"""Secrets management: load wallet signing material from environment or keypair file.

Priority order for the main wallet:
1. Environment variable: PRIVATE_KEY
2. Keypair file: path in KEYPAIR_PATH, else ~/.config/solana/id.json

The delegate secret is optional and only read from DELEGATE_PRIVATE_KEY. It is
present when an earlier run generated a delegate and the operator kept it.
"""
import os
from pathlib import Path
from typing import NamedTuple, Optional

DEFAULT_KEYPAIR_PATH = Path.home() / ".config" / "solana" / "id.json"


class WalletSecrets(NamedTuple):
    main_secret: str
    delegate_secret: Optional[str] = None


def load_wallet_secrets(
    keypair_path: Optional[str] = None,
) -> WalletSecrets:
    """Load wallet secrets from env or keypair file.

    Args:
        keypair_path: Optional override path to a keypair file. If not provided,
                      checks KEYPAIR_PATH env var, then ~/.config/solana/id.json

    Returns:
        WalletSecrets with main_secret and optional delegate_secret

    Raises:
        ValueError: If no main wallet secret can be found
    """
    delegate_secret = os.getenv("DELEGATE_PRIVATE_KEY") or None

    main_secret = os.getenv("PRIVATE_KEY")
    if main_secret:
        return WalletSecrets(main_secret=main_secret, delegate_secret=delegate_secret)

    if keypair_path is None:
        keypair_path = os.getenv("KEYPAIR_PATH")
    if keypair_path is None:
        keypair_path = str(DEFAULT_KEYPAIR_PATH)

    keypair_file = Path(keypair_path).expanduser()
    if keypair_file.is_file():
        # the wallet module accepts keypair file paths directly
        return WalletSecrets(main_secret=str(keypair_file), delegate_secret=delegate_secret)

    raise ValueError(
        "Missing wallet secret. Provide via:\n"
        "  - Environment: PRIVATE_KEY (base58, hex or byte array)\n"
        f"  - Keypair file: {keypair_path}\n"
        "  - KEYPAIR_PATH env var to override keypair location"
    )
