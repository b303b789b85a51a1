"""
Deployment Script for the BitRaise crowdfunding contract

Compiles the Puya TEAL output through algod, creates the application and
funds its account to cover its own minimum balance. Box storage is paid
for by the callers that create the boxes.
Run with: python -m scripts.deploy

Environment variables:
- ALGOD_SERVER: Algorand node URL
- ALGOD_TOKEN: Algorand node token
- DEPLOYER_MNEMONIC: 25-word mnemonic for deployer account (becomes platform owner)
- NETWORK: localnet | testnet | mainnet
- BUILD_DIR: Puya output directory (default: build)
- APP_FUND_AMOUNT: microALGOs sent to the app account after creation (default: 1000000)
"""

import base64
import json
import os
import sys
from pathlib import Path

from algosdk import abi, account, mnemonic, transaction
from algosdk.error import AlgodHTTPError
from algosdk.logic import get_application_address
from algosdk.v2client import algod
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

CONTRACT_NAME = "BitRaise"

# Global state: campaign_nonce (uint) + fee_ledger (bytes)
GLOBAL_SCHEMA = transaction.StateSchema(num_uints=1, num_byte_slices=1)
LOCAL_SCHEMA = transaction.StateSchema(num_uints=0, num_byte_slices=0)

MAX_PAGE_SIZE = 2048


def get_algod_client() -> algod.AlgodClient:
    """Create Algorand client from environment variables."""
    server = os.getenv("ALGOD_SERVER", "http://localhost:4001")
    token = os.getenv("ALGOD_TOKEN", "a" * 64)

    return algod.AlgodClient(token, server)


def get_deployer_account() -> tuple[str, str]:
    """Get deployer account from mnemonic."""
    mnemonic_phrase = os.getenv("DEPLOYER_MNEMONIC")

    if not mnemonic_phrase:
        # For localnet, use default account
        print("Warning: No DEPLOYER_MNEMONIC set. Using generated account for localnet.")
        private_key, address = account.generate_account()
        return private_key, address

    private_key = mnemonic.to_private_key(mnemonic_phrase)
    address = account.address_from_private_key(private_key)

    return private_key, address


def compile_program(client: algod.AlgodClient, teal_path: Path) -> bytes:
    """Compile a TEAL file through algod."""
    compile_response = client.compile(teal_path.read_text())
    return base64.b64decode(compile_response["result"])


def extra_pages_for(approval_program: bytes, clear_program: bytes) -> int:
    """Extra program pages needed beyond the first 2KB page."""
    total = len(approval_program) + len(clear_program)
    return max(0, (total - 1) // MAX_PAGE_SIZE)


def deploy_contract(
    client: algod.AlgodClient,
    private_key: str,
    sender: str,
    approval_program: bytes,
    clear_program: bytes,
) -> int:
    """Create the application with the create()void call and return the app ID."""
    params = client.suggested_params()
    create_selector = abi.Method.from_signature("create()void").get_selector()

    txn = transaction.ApplicationCreateTxn(
        sender=sender,
        sp=params,
        on_complete=transaction.OnComplete.NoOpOC,
        approval_program=approval_program,
        clear_program=clear_program,
        global_schema=GLOBAL_SCHEMA,
        local_schema=LOCAL_SCHEMA,
        app_args=[create_selector],
        extra_pages=extra_pages_for(approval_program, clear_program),
    )

    signed_txn = txn.sign(private_key)
    tx_id = client.send_transaction(signed_txn)

    # Wait for confirmation
    result = transaction.wait_for_confirmation(client, tx_id, 4)
    return result["application-index"]


def fund_app_account(
    client: algod.AlgodClient,
    private_key: str,
    sender: str,
    app_id: int,
    amount: int,
) -> str:
    """Send the app account enough ALGO to cover its minimum balance."""
    params = client.suggested_params()
    txn = transaction.PaymentTxn(
        sender=sender,
        sp=params,
        receiver=get_application_address(app_id),
        amt=amount,
    )

    signed_txn = txn.sign(private_key)
    tx_id = client.send_transaction(signed_txn)
    transaction.wait_for_confirmation(client, tx_id, 4)
    return tx_id


def main():
    """Main deployment function."""
    print("=" * 60)
    print("BitRaise - Crowdfunding Contract Deployment")
    print("=" * 60)

    network = os.getenv("NETWORK", "localnet")
    build_dir = Path(os.getenv("BUILD_DIR", "build"))
    fund_amount = int(os.getenv("APP_FUND_AMOUNT", "1000000"))
    print(f"\nNetwork: {network}")

    approval_path = build_dir / f"{CONTRACT_NAME}.approval.teal"
    clear_path = build_dir / f"{CONTRACT_NAME}.clear.teal"
    if not approval_path.exists() or not clear_path.exists():
        print(f"\n❌ Compiled TEAL not found in {build_dir}/")
        print("Build the contract first:")
        print(f"   puyapy contracts/bitraise/contract.py --out-dir {build_dir}")
        sys.exit(1)

    client = get_algod_client()
    private_key, deployer = get_deployer_account()
    print(f"Deployer (platform owner): {deployer}")

    # Check balance
    try:
        account_info = client.account_info(deployer)
        balance = account_info["amount"] / 1_000_000
        print(f"Balance: {balance:.6f} ALGO")

        if balance < 2:
            print("\nWarning: Low balance. Fund your account before deploying.")
            if network == "localnet":
                print("Run: algokit goal clerk send -a 10000000 -f <dispenser> -t " + deployer)
    except AlgodHTTPError as e:
        print(f"Could not check balance: {e}")

    print("\n" + "-" * 60)
    print("Contract Deployment")
    print("-" * 60)

    try:
        approval_program = compile_program(client, approval_path)
        clear_program = compile_program(client, clear_path)
        print(f"\n📄 {CONTRACT_NAME}")
        print(f"   Approval: {len(approval_program)} bytes")
        print(f"   Clear: {len(clear_program)} bytes")

        app_id = deploy_contract(client, private_key, deployer, approval_program, clear_program)
        app_address = get_application_address(app_id)
        print(f"   ✅ Deployed: App ID {app_id}")
        print(f"   App address: {app_address}")

        fund_app_account(client, private_key, deployer, app_id, fund_amount)
        print(f"   ✅ Funded app account with {fund_amount / 1_000_000:.6f} ALGO")
    except AlgodHTTPError as e:
        print(f"\n❌ Deployment failed: {e}")
        sys.exit(1)

    # Save deployment info
    output_path = Path("deployment.json")
    deployment_info = {
        "network": network,
        "deployer": deployer,
        "contracts": {
            CONTRACT_NAME: {
                "app_id": app_id,
                "app_address": app_address,
            },
        },
    }

    with open(output_path, "w") as f:
        json.dump(deployment_info, f, indent=2)

    print(f"\nDeployment info saved to: {output_path}")


if __name__ == "__main__":
    main()
