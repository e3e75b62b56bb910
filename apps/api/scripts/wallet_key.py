import argparse

from core.wallet import Ed25519WalletSigner, generate_wallet_key


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate a local Ed25519 wallet key for signing consents."
    )
    parser.add_argument(
        "--private-key-hex",
        default=None,
        help="Print the account for an existing key instead of generating one.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    private_key_hex = args.private_key_hex or generate_wallet_key()
    signer = Ed25519WalletSigner(private_key_hex)

    if not args.private_key_hex:
        print("Private Key (shown once):", private_key_hex)
    print("Account:", signer.account)
    print("Use with: WALLET_PRIVATE_KEY=<private key> python -m scripts.create_consent ...")


if __name__ == "__main__":
    main()
